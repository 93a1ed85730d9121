from __future__ import annotations

import base64
from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine

from imei_registry import main as app_main
from imei_registry.infra import db
from imei_registry.infra.crypto import get_cipher_codec

TEST_KEY = base64.b64encode(bytes(range(32))).decode()
TEST_IV = base64.b64encode(bytes(range(16))).decode()


@pytest.fixture()
def registry_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("ENCRYPTION_KEY", TEST_KEY)
    monkeypatch.setenv("ENCRYPTION_IV", TEST_IV)
    get_cipher_codec.cache_clear()

    db_path = tmp_path / "registry_test.db"
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


def _bootstrap(client: TestClient) -> str:
    response = client.post("/api/auth/bootstrap", json={"username": "root", "password": "root-pass"})
    assert response.status_code == 201
    login = client.post("/api/auth/login", json={"username": "root", "password": "root-pass"})
    assert login.status_code == 200
    return login.json()["access_token"]


def _create_tenant(client: TestClient, token: str, name: str) -> str:
    response = client.post("/api/tenants", json={"name": name}, headers=_auth_header(token))
    assert response.status_code == 201
    return response.json()["id"]


def _create_person(client: TestClient, token: str, tenant_id: str, identifier: str) -> str:
    response = client.post(
        "/api/persons",
        json={"tenant_id": tenant_id, "name": f"Person {identifier}", "identifier": identifier},
        headers=_auth_header(token),
    )
    assert response.status_code == 201
    return response.json()["id"]


def _register_device(client: TestClient, token: str, person_id: str, imei: str) -> str:
    response = client.post(
        "/api/devices",
        json={"imei": imei, "person_id": person_id},
        headers=_auth_header(token),
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_person_with_devices_cannot_be_deleted(registry_client: TestClient) -> None:
    token = _bootstrap(registry_client)
    tenant_id = _create_tenant(registry_client, token, "Acme Mobile")
    person_id = _create_person(registry_client, token, tenant_id, "ID-12345")
    device_id = _register_device(registry_client, token, person_id, "123456789012345")

    blocked = registry_client.delete(f"/api/persons/{person_id}", headers=_auth_header(token))
    assert blocked.status_code == 409
    assert blocked.json()["detail"]["code"] == "has_devices"

    listed = registry_client.get(f"/api/persons/{person_id}/devices", headers=_auth_header(token))
    assert [item["id"] for item in listed.json()] == [device_id]

    assert registry_client.delete(f"/api/devices/{device_id}", headers=_auth_header(token)).status_code == 204
    assert registry_client.get(f"/api/devices/{device_id}", headers=_auth_header(token)).status_code == 404
    assert registry_client.delete(f"/api/persons/{person_id}", headers=_auth_header(token)).status_code == 204
    assert registry_client.get(f"/api/persons/{person_id}", headers=_auth_header(token)).status_code == 404


def test_tenant_deactivation_is_blocked_while_devices_exist(registry_client: TestClient) -> None:
    token = _bootstrap(registry_client)
    tenant_id = _create_tenant(registry_client, token, "Acme Mobile")
    person_id = _create_person(registry_client, token, tenant_id, "ID-12345")
    device_id = _register_device(registry_client, token, person_id, "123456789012345")

    blocked = registry_client.delete(f"/api/tenants/{tenant_id}", headers=_auth_header(token))
    assert blocked.status_code == 409
    assert blocked.json()["detail"]["code"] == "has_devices"

    registry_client.delete(f"/api/devices/{device_id}", headers=_auth_header(token))
    assert registry_client.delete(f"/api/tenants/{tenant_id}", headers=_auth_header(token)).status_code == 204
    assert registry_client.get(f"/api/tenants/{tenant_id}", headers=_auth_header(token)).status_code == 404
    assert registry_client.get("/api/tenants", headers=_auth_header(token)).json() == []


def test_tenant_names_are_unique_case_insensitively(registry_client: TestClient) -> None:
    token = _bootstrap(registry_client)
    tenant_id = _create_tenant(registry_client, token, "Acme Mobile")
    duplicate = registry_client.post("/api/tenants", json={"name": "ACME mobile"}, headers=_auth_header(token))
    assert duplicate.status_code == 409

    renamed = registry_client.patch(
        f"/api/tenants/{tenant_id}",
        json={"name": "Acme Telecom"},
        headers=_auth_header(token),
    )
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Acme Telecom"

    persons = registry_client.get(f"/api/tenants/{tenant_id}/persons", headers=_auth_header(token))
    assert persons.status_code == 200
    assert persons.json()["total"] == 0


def test_person_identifier_rules(registry_client: TestClient) -> None:
    token = _bootstrap(registry_client)
    tenant_id = _create_tenant(registry_client, token, "Acme Mobile")
    person_id = _create_person(registry_client, token, tenant_id, "ID-12345")
    other_id = _create_person(registry_client, token, tenant_id, "ID-67890")

    too_short = registry_client.post(
        "/api/persons",
        json={"tenant_id": tenant_id, "name": "Short", "identifier": "abc"},
        headers=_auth_header(token),
    )
    assert too_short.status_code == 400
    assert too_short.json()["detail"]["code"] == "identifier_format"

    duplicate = registry_client.post(
        "/api/persons",
        json={"tenant_id": tenant_id, "name": "Dup", "identifier": "ID-12345"},
        headers=_auth_header(token),
    )
    assert duplicate.status_code == 409

    unknown_tenant = registry_client.post(
        "/api/persons",
        json={"tenant_id": "missing", "name": "Nobody", "identifier": "ID-00000"},
        headers=_auth_header(token),
    )
    assert unknown_tenant.status_code == 404

    keep_own = registry_client.patch(
        f"/api/persons/{person_id}",
        json={"identifier": "ID-12345", "email": "ana@example.com"},
        headers=_auth_header(token),
    )
    assert keep_own.status_code == 200
    assert keep_own.json()["email"] == "ana@example.com"

    steal = registry_client.patch(
        f"/api/persons/{other_id}",
        json={"identifier": "ID-12345"},
        headers=_auth_header(token),
    )
    assert steal.status_code == 409


def test_device_registration_and_reassignment(registry_client: TestClient) -> None:
    token = _bootstrap(registry_client)
    tenant_id = _create_tenant(registry_client, token, "Acme Mobile")
    person_id = _create_person(registry_client, token, tenant_id, "ID-12345")
    other_id = _create_person(registry_client, token, tenant_id, "ID-67890")

    short_imei = registry_client.post(
        "/api/devices",
        json={"imei": "12345678901234", "person_id": person_id},
        headers=_auth_header(token),
    )
    assert short_imei.status_code == 400
    assert short_imei.json()["detail"]["code"] == "imei_format"

    no_owner = registry_client.post(
        "/api/devices",
        json={"imei": "123456789012345", "person_id": "missing"},
        headers=_auth_header(token),
    )
    assert no_owner.status_code == 404

    device_id = _register_device(registry_client, token, person_id, "123456789012345")
    bad_move = registry_client.patch(
        f"/api/devices/{device_id}",
        json={"person_id": "missing"},
        headers=_auth_header(token),
    )
    assert bad_move.status_code == 404

    moved = registry_client.patch(
        f"/api/devices/{device_id}",
        json={"person_id": other_id},
        headers=_auth_header(token),
    )
    assert moved.status_code == 200
    assert moved.json()["person_id"] == other_id
    assert moved.json()["imei"] == "123456789012345"

    verified = registry_client.post(
        "/api/verification/verify",
        json={"imei": "123456789012345"},
        headers=_auth_header(token),
    )
    assert verified.json()["person"]["id"] == other_id
