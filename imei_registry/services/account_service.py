from __future__ import annotations

import hashlib
import hmac
import logging
import os
from typing import Any

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from imei_registry.domain.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    UnauthorizedError,
)
from imei_registry.domain.models import (
    Account,
    AccountCreate,
    AccountUpdate,
    BootstrapRequest,
    Tenant,
)
from imei_registry.domain.roles import AccountRole, is_admin_role
from imei_registry.domain.scope import AccessScope
from imei_registry.domain.validation import validate_password
from imei_registry.infra.db import get_engine
from imei_registry.services.authorization import AuthorizationGuard

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, guard: AuthorizationGuard | None = None) -> None:
        self._guard = guard or AuthorizationGuard()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _hash_password(self, raw_password: str) -> str:
        salt = os.getenv("PASSWORD_SALT", "imei-registry-dev-salt")
        return hashlib.sha256(f"{salt}:{raw_password}".encode()).hexdigest()

    def _get_account(self, session: Session, account_id: str) -> Account:
        account = session.get(Account, account_id)
        if account is None:
            raise NotFoundError("account not found")
        return account

    def _ensure_tenant_assignable(self, session: Session, role: AccountRole, tenant_id: str | None) -> None:
        if tenant_id is None:
            if not is_admin_role(role):
                raise InvalidInputError("non-administrative accounts require a tenant", reason="tenant_required")
            return
        tenant = session.get(Tenant, tenant_id)
        if tenant is None or not tenant.active:
            raise NotFoundError("tenant not found")

    def bootstrap(self, payload: BootstrapRequest) -> Account:
        validate_password(payload.password)
        with self._session() as session:
            if session.exec(select(Account.id)).first() is not None:
                raise ConflictError("registry already initialized", reason="already_initialized")
            account = Account(
                username=payload.username.strip(),
                password_hash=self._hash_password(payload.password),
                role=AccountRole.SUPER_ADMIN,
                tenant_id=None,
            )
            session.add(account)
            session.commit()
            session.refresh(account)
        logger.info("bootstrapped super admin account %s", account.id)
        return account

    def authenticate(self, username: str, password: str) -> Account:
        with self._session() as session:
            account = session.exec(select(Account).where(Account.username == username.strip())).first()
            if account is None:
                logger.warning("login failed for unknown username")
                raise UnauthorizedError("invalid credentials")
            if not hmac.compare_digest(account.password_hash, self._hash_password(password)):
                logger.warning("login failed for account %s", account.id)
                raise UnauthorizedError("invalid credentials")
            if not account.active:
                raise UnauthorizedError("account disabled")
            return account

    def create_account(self, scope: AccessScope, payload: AccountCreate) -> Account:
        self._guard.ensure_can_assign_role(scope, payload.role)
        validate_password(payload.password)
        with self._session() as session:
            self._ensure_tenant_assignable(session, payload.role, payload.tenant_id)
            account = Account(
                username=payload.username.strip(),
                password_hash=self._hash_password(payload.password),
                role=payload.role,
                tenant_id=payload.tenant_id,
            )
            session.add(account)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(f"username '{payload.username}' already exists") from exc
            session.refresh(account)
        logger.info("account %s created with role %s by %s", account.id, account.role, scope.account_id)
        return account

    def list_accounts(self, scope: AccessScope) -> list[Account]:
        scope.require_privileged("manage accounts")
        with self._session() as session:
            statement = select(Account).order_by(col(Account.created_at), col(Account.id))
            return list(session.exec(statement).all())

    def get_account(self, scope: AccessScope, account_id: str) -> Account:
        scope.require_privileged("manage accounts")
        with self._session() as session:
            return self._get_account(session, account_id)

    def update_account(self, scope: AccessScope, account_id: str, payload: AccountUpdate) -> Account:
        scope.require_privileged("manage accounts")
        with self._session() as session:
            account = self._get_account(session, account_id)
            self._guard.ensure_can_modify(scope, AccountRole(account.role))
            values: dict[str, Any] = {}
            new_role = AccountRole(payload.role) if payload.role is not None else AccountRole(account.role)
            if new_role != account.role:
                self._guard.ensure_can_assign_role(scope, new_role)
                if is_admin_role(account.role):
                    self._guard.ensure_can_assign_role(scope, AccountRole(account.role))
                self._guard.ensure_not_self(scope, account_id, "change the role of")
                values["role"] = new_role.value
            if payload.tenant_id is not None or "role" in values:
                tenant_id = payload.tenant_id if payload.tenant_id is not None else account.tenant_id
                self._ensure_tenant_assignable(session, new_role, tenant_id)
                values["tenant_id"] = tenant_id
            if payload.password is not None:
                validate_password(payload.password)
                values["password_hash"] = self._hash_password(payload.password)
            if payload.active is not None and payload.active != account.active:
                if not payload.active:
                    self._guard.ensure_not_self(scope, account_id, "deactivate")
                values["active"] = payload.active
            if not values:
                return account
            removes_admin = is_admin_role(account.role) and (
                not is_admin_role(new_role) or values.get("active") is False
            )
            self._apply_update(session, account_id, values, guard_last_admin=removes_admin)
            session.refresh(account)
        logger.info("account %s updated by %s (%s)", account_id, scope.account_id, sorted(values))
        return account

    def set_active(self, scope: AccessScope, account_id: str, active: bool) -> Account:
        return self.update_account(scope, account_id, AccountUpdate(active=active))

    def _apply_update(
        self,
        session: Session,
        account_id: str,
        values: dict[str, Any],
        *,
        guard_last_admin: bool,
    ) -> None:
        statement = (
            sa.update(Account)
            .where(col(Account.id) == account_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if guard_last_admin:
            statement = statement.where(self._guard.admin_retained_without(account_id))
        result = session.execute(statement)
        if not result.rowcount:
            session.rollback()
            raise self._guard.last_admin_error()
        session.commit()

    def delete_account(self, scope: AccessScope, account_id: str) -> None:
        scope.require_privileged("manage accounts")
        self._guard.ensure_not_self(scope, account_id, "delete")
        with self._session() as session:
            account = self._get_account(session, account_id)
            self._guard.ensure_can_modify(scope, AccountRole(account.role))
            statement = (
                sa.delete(Account)
                .where(col(Account.id) == account_id)
                .where(self._guard.admin_retained_without(account_id))
                .execution_options(synchronize_session=False)
            )
            result = session.execute(statement)
            if not result.rowcount:
                session.rollback()
                logger.warning("rejected deletion of last active admin %s", account_id)
                raise self._guard.last_admin_error()
            session.commit()
        logger.info("account %s deleted by %s", account_id, scope.account_id)
