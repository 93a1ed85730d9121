from __future__ import annotations

import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import aliased
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import col, select

from imei_registry.domain.errors import ConflictError, ForbiddenError
from imei_registry.domain.models import Account
from imei_registry.domain.roles import ADMIN_ROLES, AccountRole, is_admin_role
from imei_registry.domain.scope import AccessScope
from imei_registry.services.identifier_store import IdentifierStore

logger = logging.getLogger(__name__)


class AuthorizationGuard:
    """Business rules that hold regardless of the caller's tenant scope."""

    def ensure_not_self(self, scope: AccessScope, account_id: str, action: str) -> None:
        if scope.account_id == account_id:
            logger.warning("rejected self-%s by account %s", action, account_id)
            raise ConflictError(f"cannot {action} your own account", reason="self_protection")

    def ensure_can_assign_role(self, scope: AccessScope, role: AccountRole) -> None:
        scope.require_privileged("manage accounts")
        if is_admin_role(role) and not scope.is_super_admin:
            raise ForbiddenError(
                f"only {AccountRole.SUPER_ADMIN} may grant the {role} role",
                reason="admin_creation",
            )

    def ensure_can_modify(self, scope: AccessScope, target_role: AccountRole) -> None:
        scope.require_privileged("manage accounts")
        if target_role == AccountRole.SUPER_ADMIN and not scope.is_super_admin:
            raise ForbiddenError(
                f"only {AccountRole.SUPER_ADMIN} may modify {AccountRole.SUPER_ADMIN} accounts",
                reason="super_admin_required",
            )

    def admin_retained_without(self, account_id: str) -> ColumnElement[bool]:
        """Condition under which ``account_id`` may stop being an active admin.

        True when the target is not an active admin or another active admin
        exists. Embedded in the DELETE or UPDATE that takes the target out of
        the admin set, so the count and the write run as one statement.
        """
        admin_roles = [role.value for role in ADMIN_ROLES]
        peer = aliased(Account, name="peer")
        remaining_admins = (
            select(func.count())
            .select_from(peer)
            .where(peer.role.in_(admin_roles))
            .where(peer.active.is_(True))
            .where(peer.id != account_id)
            .correlate(None)
            .scalar_subquery()
        )
        return or_(
            col(Account.role).not_in(admin_roles),
            col(Account.active).is_(False),
            remaining_admins >= 1,
        )

    def last_admin_error(self) -> ConflictError:
        return ConflictError("cannot remove the last active administrator", reason="last_admin")

    def ensure_person_deletable(self, store: IdentifierStore, person_id: str) -> None:
        if store.count_devices_for_person(person_id) > 0:
            raise ConflictError("person has associated devices", reason="has_devices")

    def ensure_tenant_deactivatable(self, store: IdentifierStore, tenant_id: str) -> None:
        if store.count_devices_for_tenant(tenant_id) > 0:
            raise ConflictError("tenant has persons with assigned devices", reason="has_devices")
