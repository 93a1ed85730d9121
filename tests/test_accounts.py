from __future__ import annotations

import base64
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import Session, SQLModel, create_engine, select

from imei_registry import main as app_main
from imei_registry.domain.errors import ConflictError
from imei_registry.domain.models import Account
from imei_registry.domain.roles import AccountRole
from imei_registry.domain.scope import AccessScope
from imei_registry.infra import db
from imei_registry.infra.crypto import get_cipher_codec
from imei_registry.services.account_service import AccountService

TEST_KEY = base64.b64encode(bytes(range(32))).decode()
TEST_IV = base64.b64encode(bytes(range(16))).decode()


@pytest.fixture()
def account_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("ENCRYPTION_KEY", TEST_KEY)
    monkeypatch.setenv("ENCRYPTION_IV", TEST_IV)
    get_cipher_codec.cache_clear()

    db_path = tmp_path / "account_test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(test_engine, "connect")
    def _enable_foreign_keys(dbapi_connection: object, _connection_record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    client = TestClient(app_main.app)
    yield client
    client.close()
    get_cipher_codec.cache_clear()


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _login(client: TestClient, username: str, password: str) -> str:
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200
    return response.json()["access_token"]


def _bootstrap(client: TestClient) -> tuple[str, str]:
    response = client.post("/api/auth/bootstrap", json={"username": "root", "password": "root-pass"})
    assert response.status_code == 201
    return response.json()["id"], _login(client, "root", "root-pass")


def _create_account(
    client: TestClient,
    token: str,
    username: str,
    role: str,
    tenant_id: str | None = None,
) -> str:
    response = client.post(
        "/api/accounts",
        json={"username": username, "password": f"{username}-pass", "role": role, "tenant_id": tenant_id},
        headers=_auth_header(token),
    )
    assert response.status_code == 201
    return response.json()["id"]


def _create_tenant(client: TestClient, token: str, name: str) -> str:
    response = client.post("/api/tenants", json={"name": name}, headers=_auth_header(token))
    assert response.status_code == 201
    return response.json()["id"]


def test_bootstrap_only_once_and_login(account_client: TestClient) -> None:
    root_id, token = _bootstrap(account_client)
    again = account_client.post("/api/auth/bootstrap", json={"username": "other", "password": "other-pass"})
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_initialized"

    bad_login = account_client.post("/api/auth/login", json={"username": "root", "password": "wrong-pass"})
    assert bad_login.status_code == 401

    me = account_client.get("/api/auth/me", headers=_auth_header(token))
    assert me.status_code == 200
    assert me.json() == {"account_id": root_id, "role": "SuperAdmin", "tenant_id": None}

    assert account_client.get("/api/auth/me").status_code == 401
    assert account_client.get("/api/auth/me", headers=_auth_header("not-a-jwt")).status_code == 401


def test_bootstrap_rejects_short_password(account_client: TestClient) -> None:
    response = account_client.post("/api/auth/bootstrap", json={"username": "root", "password": "abc"})
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "password_too_short"


def test_only_super_admin_may_create_admins(account_client: TestClient) -> None:
    _, root_token = _bootstrap(account_client)
    _create_account(account_client, root_token, "admin-a", "Admin")
    admin_token = _login(account_client, "admin-a", "admin-a-pass")

    denied = account_client.post(
        "/api/accounts",
        json={"username": "admin-b", "password": "admin-b-pass", "role": "Admin"},
        headers=_auth_header(admin_token),
    )
    assert denied.status_code == 403
    assert denied.json()["detail"]["code"] == "admin_creation"

    tenant_id = _create_tenant(account_client, admin_token, "Acme Mobile")
    user_id = _create_account(account_client, admin_token, "clerk", "User", tenant_id)
    promote = account_client.patch(
        f"/api/accounts/{user_id}",
        json={"role": "Admin"},
        headers=_auth_header(admin_token),
    )
    assert promote.status_code == 403

    user_token = _login(account_client, "clerk", "clerk-pass")
    assert account_client.get("/api/accounts", headers=_auth_header(user_token)).status_code == 403


def test_user_accounts_require_a_tenant(account_client: TestClient) -> None:
    _, root_token = _bootstrap(account_client)
    response = account_client.post(
        "/api/accounts",
        json={"username": "clerk", "password": "clerk-pass", "role": "User"},
        headers=_auth_header(root_token),
    )
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "tenant_required"

    duplicate_tenant_id = _create_tenant(account_client, root_token, "Acme Mobile")
    _create_account(account_client, root_token, "clerk", "User", duplicate_tenant_id)
    duplicate = account_client.post(
        "/api/accounts",
        json={"username": "clerk", "password": "clerk-pass", "role": "User", "tenant_id": duplicate_tenant_id},
        headers=_auth_header(root_token),
    )
    assert duplicate.status_code == 409


def test_self_deactivation_and_deletion_are_rejected(account_client: TestClient) -> None:
    root_id, root_token = _bootstrap(account_client)
    _create_account(account_client, root_token, "admin-a", "Admin")

    deactivate = account_client.put(
        f"/api/accounts/{root_id}/active",
        json={"active": False},
        headers=_auth_header(root_token),
    )
    assert deactivate.status_code == 409
    assert deactivate.json()["detail"]["code"] == "self_protection"

    delete = account_client.delete(f"/api/accounts/{root_id}", headers=_auth_header(root_token))
    assert delete.status_code == 409
    assert delete.json()["detail"]["code"] == "self_protection"


def test_admin_cannot_modify_super_admin(account_client: TestClient) -> None:
    root_id, root_token = _bootstrap(account_client)
    _create_account(account_client, root_token, "admin-a", "Admin")
    admin_token = _login(account_client, "admin-a", "admin-a-pass")

    response = account_client.put(
        f"/api/accounts/{root_id}/active",
        json={"active": False},
        headers=_auth_header(admin_token),
    )
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "super_admin_required"


def test_deleting_admin_succeeds_while_another_remains(account_client: TestClient) -> None:
    _, root_token = _bootstrap(account_client)
    admin_id = _create_account(account_client, root_token, "admin-a", "Admin")

    deleted = account_client.delete(f"/api/accounts/{admin_id}", headers=_auth_header(root_token))
    assert deleted.status_code == 204
    assert account_client.get(f"/api/accounts/{admin_id}", headers=_auth_header(root_token)).status_code == 404


def test_last_active_admin_cannot_be_removed(account_client: TestClient) -> None:
    root_id, root_token = _bootstrap(account_client)
    second_id = _create_account(account_client, root_token, "root-2", "SuperAdmin")
    second_token = _login(account_client, "root-2", "root-2-pass")

    deactivated = account_client.put(
        f"/api/accounts/{root_id}/active",
        json={"active": False},
        headers=_auth_header(second_token),
    )
    assert deactivated.status_code == 200
    assert deactivated.json()["active"] is False

    # The first token still carries an admin claim, but its account no longer counts.
    blocked_delete = account_client.delete(f"/api/accounts/{second_id}", headers=_auth_header(root_token))
    assert blocked_delete.status_code == 409
    assert blocked_delete.json()["detail"]["code"] == "last_admin"

    blocked_demote = account_client.patch(
        f"/api/accounts/{second_id}",
        json={"role": "User", "tenant_id": _create_tenant(account_client, root_token, "Acme Mobile")},
        headers=_auth_header(root_token),
    )
    assert blocked_demote.status_code == 409

    login_disabled = account_client.post("/api/auth/login", json={"username": "root", "password": "root-pass"})
    assert login_disabled.status_code == 401


def test_last_admin_guard_in_service(account_client: TestClient) -> None:
    root_id, _ = _bootstrap(account_client)
    service = AccountService()
    outsider = AccessScope(account_id="detached-operator", role=AccountRole.SUPER_ADMIN)

    with pytest.raises(ConflictError) as exc_info:
        service.delete_account(outsider, root_id)
    assert exc_info.value.reason == "last_admin"

    with Session(db.get_engine()) as session:
        remaining = session.exec(select(Account).where(Account.id == root_id)).first()
        assert remaining is not None
        assert remaining.active is True
