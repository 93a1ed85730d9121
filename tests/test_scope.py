from __future__ import annotations

import pytest

from imei_registry.domain.errors import ForbiddenError, UnauthorizedError
from imei_registry.domain.roles import AccountRole
from imei_registry.domain.scope import AccessScope, SessionClaim


def test_claim_from_token_payload() -> None:
    claim = SessionClaim.from_token_payload({"sub": "acc-1", "role": "User", "tenant_id": "t-1"})
    assert claim == SessionClaim(account_id="acc-1", role=AccountRole.USER, tenant_id="t-1")

    admin = SessionClaim.from_token_payload({"sub": "acc-2", "role": "SuperAdmin", "tenant_id": None})
    assert admin.tenant_id is None


@pytest.mark.parametrize(
    "payload",
    [
        {"role": "Admin"},
        {"sub": "", "role": "Admin"},
        {"sub": "acc-1", "role": "Operator"},
        {"sub": "acc-1", "role": "User", "tenant_id": 7},
    ],
)
def test_claim_rejects_malformed_payload(payload: dict[str, object]) -> None:
    with pytest.raises(UnauthorizedError):
        SessionClaim.from_token_payload(payload)


def test_privileged_scope_has_no_tenant_filter() -> None:
    scope = AccessScope(account_id="acc-1", role=AccountRole.ADMIN)
    assert scope.is_privileged
    assert not scope.is_super_admin
    assert scope.can_reveal_identifiers
    assert scope.tenant_filter() is None
    assert scope.tenant_filter("t-9") == "t-9"
    scope.ensure_tenant("t-9")


def test_user_scope_is_pinned_to_claim_tenant() -> None:
    scope = AccessScope(account_id="acc-1", role=AccountRole.USER, tenant_id="t-1")
    assert not scope.can_reveal_identifiers
    assert scope.tenant_filter() == "t-1"
    assert scope.tenant_filter("t-1") == "t-1"
    scope.ensure_tenant("t-1")

    with pytest.raises(ForbiddenError) as exc_info:
        scope.tenant_filter("t-2")
    assert exc_info.value.code == "tenant_scope"
    with pytest.raises(ForbiddenError):
        scope.ensure_tenant("t-2")
    with pytest.raises(ForbiddenError) as exc_info:
        scope.require_privileged("create tenants")
    assert exc_info.value.code == "role_required"


def test_user_scope_without_tenant_sees_nothing() -> None:
    scope = AccessScope(account_id="acc-1", role=AccountRole.USER)
    assert not scope.can_see_tenant(None)
    with pytest.raises(ForbiddenError):
        scope.tenant_filter()
