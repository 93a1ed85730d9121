"""Per-request visibility scope derived from the session claim.

The scope is computed once when the request is authenticated and passed
explicitly into every service call. Tenant ids supplied by the client are only
ever compared against the claim, never trusted on their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from imei_registry.domain.errors import ForbiddenError, UnauthorizedError
from imei_registry.domain.roles import AccountRole, is_admin_role


@dataclass(frozen=True)
class SessionClaim:
    account_id: str
    role: AccountRole
    tenant_id: str | None = None

    @classmethod
    def from_token_payload(cls, payload: dict[str, Any]) -> SessionClaim:
        account_id = payload.get("sub")
        raw_role = payload.get("role")
        tenant_id = payload.get("tenant_id")
        if not isinstance(account_id, str) or not account_id:
            raise UnauthorizedError("invalid token subject")
        try:
            role = AccountRole(raw_role)
        except ValueError as exc:
            raise UnauthorizedError("invalid token role") from exc
        if tenant_id is not None and not isinstance(tenant_id, str):
            raise UnauthorizedError("invalid token tenant")
        return cls(account_id=account_id, role=role, tenant_id=tenant_id or None)


@dataclass(frozen=True)
class AccessScope:
    account_id: str
    role: AccountRole
    tenant_id: str | None = None

    @classmethod
    def from_claim(cls, claim: SessionClaim) -> AccessScope:
        return cls(account_id=claim.account_id, role=claim.role, tenant_id=claim.tenant_id)

    @property
    def is_privileged(self) -> bool:
        return is_admin_role(self.role)

    @property
    def is_super_admin(self) -> bool:
        return self.role == AccountRole.SUPER_ADMIN

    @property
    def can_reveal_identifiers(self) -> bool:
        return self.is_privileged

    def can_see_tenant(self, tenant_id: str | None) -> bool:
        if self.is_privileged:
            return True
        return self.tenant_id is not None and tenant_id == self.tenant_id

    def ensure_tenant(self, tenant_id: str | None) -> None:
        # Out-of-tenant access is reported as a denial, not as a missing record.
        if not self.can_see_tenant(tenant_id):
            raise ForbiddenError("resource belongs to another tenant", reason="tenant_scope")

    def require_privileged(self, action: str) -> None:
        if not self.is_privileged:
            raise ForbiddenError(f"administrative role required to {action}", reason="role_required")

    def tenant_filter(self, requested_tenant_id: str | None = None) -> str | None:
        """Return the tenant id every query must be restricted to, or None for no filter."""
        if self.is_privileged:
            return requested_tenant_id
        if requested_tenant_id is not None:
            self.ensure_tenant(requested_tenant_id)
        if self.tenant_id is None:
            raise ForbiddenError("account is not assigned to a tenant", reason="tenant_scope")
        return self.tenant_id
