from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from imei_registry.domain.errors import ConflictError, NotFoundError
from imei_registry.domain.models import DeviceRead, Person, PersonCreate, PersonRead, PersonUpdate, Tenant
from imei_registry.domain.scope import AccessScope
from imei_registry.domain.validation import validate_identifier
from imei_registry.infra.db import get_engine
from imei_registry.services.authorization import AuthorizationGuard
from imei_registry.services.identifier_store import IdentifierStore
from imei_registry.services.verification_service import VerificationService

logger = logging.getLogger(__name__)


class PersonService:
    def __init__(self, verification: VerificationService, guard: AuthorizationGuard | None = None) -> None:
        self._verification = verification
        self._codec = verification.codec
        self._guard = guard or AuthorizationGuard()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_scoped_person(self, session: Session, scope: AccessScope, person_id: str) -> tuple[Person, Tenant]:
        row = IdentifierStore(session).person_with_tenant(person_id)
        if row is None:
            raise NotFoundError("person not found")
        scope.ensure_tenant(row[0].tenant_id)
        return row

    def _require_active_tenant(self, session: Session, tenant_id: str) -> Tenant:
        tenant = session.get(Tenant, tenant_id)
        if tenant is None or not tenant.active:
            raise NotFoundError("tenant not found")
        return tenant

    def _ensure_identifier_available(
        self,
        store: IdentifierStore,
        identifier: str,
        exclude_person_id: str | None = None,
    ) -> None:
        existing = self._verification.find_person(store, identifier, exclude_person_id=exclude_person_id)
        if existing is not None:
            raise ConflictError("identifier already registered")

    def _commit(self, session: Session, person: Person) -> None:
        session.add(person)
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("identifier already registered") from exc
        session.refresh(person)

    def create_person(self, scope: AccessScope, payload: PersonCreate) -> PersonRead:
        scope.require_privileged("create persons")
        identifier = validate_identifier(payload.identifier)
        with self._session() as session:
            tenant = self._require_active_tenant(session, payload.tenant_id)
            self._ensure_identifier_available(IdentifierStore(session), identifier)
            person = Person(
                tenant_id=tenant.id,
                name=payload.name.strip(),
                identifier=self._codec.encrypt(identifier),
                phone=payload.phone,
                email=payload.email,
            )
            self._commit(session, person)
        logger.info(
            "person %s created in tenant %s (identifier %s)",
            person.id,
            tenant.id,
            self._codec.fingerprint(identifier),
        )
        return self._verification.present_person(scope, person, tenant)

    def get_person(self, scope: AccessScope, person_id: str) -> PersonRead:
        with self._session() as session:
            person, tenant = self._get_scoped_person(session, scope, person_id)
            device_count = IdentifierStore(session).count_devices_for_person(person_id)
        return self._verification.present_person(scope, person, tenant, device_count)

    def update_person(self, scope: AccessScope, person_id: str, payload: PersonUpdate) -> PersonRead:
        scope.require_privileged("update persons")
        with self._session() as session:
            store = IdentifierStore(session)
            person, tenant = self._get_scoped_person(session, scope, person_id)
            if payload.tenant_id is not None and payload.tenant_id != person.tenant_id:
                tenant = self._require_active_tenant(session, payload.tenant_id)
                person.tenant_id = tenant.id
            if payload.identifier is not None:
                identifier = validate_identifier(payload.identifier)
                self._ensure_identifier_available(store, identifier, exclude_person_id=person_id)
                person.identifier = self._codec.encrypt(identifier)
            if payload.name is not None:
                person.name = payload.name.strip()
            if payload.phone is not None:
                person.phone = payload.phone
            if payload.email is not None:
                person.email = payload.email
            if payload.active is not None:
                person.active = payload.active
            self._commit(session, person)
            device_count = store.count_devices_for_person(person_id)
        logger.info("person %s updated by %s", person_id, scope.account_id)
        return self._verification.present_person(scope, person, tenant, device_count)

    def delete_person(self, scope: AccessScope, person_id: str) -> None:
        scope.require_privileged("delete persons")
        with self._session() as session:
            person, _ = self._get_scoped_person(session, scope, person_id)
            self._guard.ensure_person_deletable(IdentifierStore(session), person_id)
            session.delete(person)
            session.commit()
        logger.info("person %s deleted by %s", person_id, scope.account_id)

    def list_devices(self, scope: AccessScope, person_id: str) -> list[DeviceRead]:
        with self._session() as session:
            person, _ = self._get_scoped_person(session, scope, person_id)
            rows = IdentifierStore(session).scan_devices(tenant_id=person.tenant_id, person_id=person_id)
        return [self._verification.present_device(scope, *row) for row in rows]
