from __future__ import annotations

import logging

from sqlalchemy import func
from sqlmodel import Session, col, select

from imei_registry.domain.errors import ConflictError, NotFoundError
from imei_registry.domain.models import PersonPage, Tenant, TenantCreate, TenantUpdate
from imei_registry.domain.scope import AccessScope
from imei_registry.infra.db import get_engine
from imei_registry.services.authorization import AuthorizationGuard
from imei_registry.services.identifier_store import IdentifierStore
from imei_registry.services.verification_service import DEFAULT_PAGE_LIMIT, VerificationService

logger = logging.getLogger(__name__)


class TenantService:
    def __init__(self, verification: VerificationService, guard: AuthorizationGuard | None = None) -> None:
        self._verification = verification
        self._guard = guard or AuthorizationGuard()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_active_tenant(self, session: Session, tenant_id: str) -> Tenant:
        tenant = session.get(Tenant, tenant_id)
        if tenant is None or not tenant.active:
            raise NotFoundError("tenant not found")
        return tenant

    def _ensure_name_available(self, session: Session, name: str, exclude_tenant_id: str | None = None) -> None:
        statement = (
            select(Tenant.id)
            .where(func.lower(Tenant.name) == name.lower())
            .where(col(Tenant.active).is_(True))
        )
        if exclude_tenant_id is not None:
            statement = statement.where(Tenant.id != exclude_tenant_id)
        if session.exec(statement).first() is not None:
            raise ConflictError(f"tenant '{name}' already exists")

    def create_tenant(self, scope: AccessScope, payload: TenantCreate) -> Tenant:
        scope.require_privileged("create tenants")
        name = payload.name.strip()
        with self._session() as session:
            self._ensure_name_available(session, name)
            tenant = Tenant(name=name)
            session.add(tenant)
            session.commit()
            session.refresh(tenant)
        logger.info("tenant %s created by %s", tenant.id, scope.account_id)
        return tenant

    def list_tenants(self, scope: AccessScope) -> list[Tenant]:
        with self._session() as session:
            statement = select(Tenant).where(col(Tenant.active).is_(True))
            tenant_id = scope.tenant_filter()
            if tenant_id is not None:
                statement = statement.where(Tenant.id == tenant_id)
            return list(session.exec(statement.order_by(col(Tenant.name))).all())

    def get_tenant(self, scope: AccessScope, tenant_id: str) -> Tenant:
        scope.ensure_tenant(tenant_id)
        with self._session() as session:
            return self._get_active_tenant(session, tenant_id)

    def update_tenant(self, scope: AccessScope, tenant_id: str, payload: TenantUpdate) -> Tenant:
        scope.require_privileged("update tenants")
        name = payload.name.strip()
        with self._session() as session:
            tenant = self._get_active_tenant(session, tenant_id)
            self._ensure_name_available(session, name, exclude_tenant_id=tenant_id)
            tenant.name = name
            session.add(tenant)
            session.commit()
            session.refresh(tenant)
        logger.info("tenant %s renamed by %s", tenant_id, scope.account_id)
        return tenant

    def deactivate_tenant(self, scope: AccessScope, tenant_id: str) -> None:
        scope.require_privileged("delete tenants")
        with self._session() as session:
            tenant = self._get_active_tenant(session, tenant_id)
            self._guard.ensure_tenant_deactivatable(IdentifierStore(session), tenant_id)
            tenant.active = False
            session.add(tenant)
            session.commit()
        logger.info("tenant %s deactivated by %s", tenant_id, scope.account_id)

    def list_persons(
        self,
        scope: AccessScope,
        tenant_id: str,
        *,
        search: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> PersonPage:
        self.get_tenant(scope, tenant_id)
        return self._verification.search_persons(
            scope,
            search=search,
            tenant_id=tenant_id,
            page=page,
            limit=limit,
        )
