from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from imei_registry.domain.errors import ConflictError, NotFoundError
from imei_registry.domain.models import Device, DeviceCreate, DeviceRead, DeviceUpdate, Person, Tenant
from imei_registry.domain.scope import AccessScope
from imei_registry.domain.validation import validate_register_imei
from imei_registry.infra.db import get_engine
from imei_registry.services.identifier_store import IdentifierStore
from imei_registry.services.verification_service import VerificationService

logger = logging.getLogger(__name__)


class DeviceService:
    def __init__(self, verification: VerificationService) -> None:
        self._verification = verification
        self._codec = verification.codec

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_scoped_device(
        self,
        session: Session,
        scope: AccessScope,
        device_id: str,
    ) -> tuple[Device, Person, Tenant]:
        row = IdentifierStore(session).device_with_owner(device_id)
        if row is None:
            raise NotFoundError("device not found")
        scope.ensure_tenant(row[1].tenant_id)
        return row

    def _get_owner(self, session: Session, person_id: str) -> tuple[Person, Tenant]:
        row = IdentifierStore(session).person_with_tenant(person_id)
        if row is None:
            raise NotFoundError("person not found")
        return row

    def register_device(self, scope: AccessScope, payload: DeviceCreate) -> DeviceRead:
        scope.require_privileged("register devices")
        imei = validate_register_imei(payload.imei)
        fingerprint = self._codec.fingerprint(imei)
        with self._session() as session:
            store = IdentifierStore(session)
            if self._verification.find_device(store, imei) is not None:
                logger.info("rejected duplicate registration of imei %s", fingerprint)
                raise ConflictError("imei already registered")
            person, tenant = self._get_owner(session, payload.person_id)
            device = Device(
                person_id=person.id,
                imei=self._codec.encrypt(imei),
                active=payload.active,
            )
            session.add(device)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError("imei already registered") from exc
            session.refresh(device)
        logger.info("device %s registered to person %s (imei %s)", device.id, person.id, fingerprint)
        return self._verification.present_device(scope, device, person, tenant)

    def get_device(self, scope: AccessScope, device_id: str) -> DeviceRead:
        with self._session() as session:
            device, person, tenant = self._get_scoped_device(session, scope, device_id)
        return self._verification.present_device(scope, device, person, tenant)

    def update_device(self, scope: AccessScope, device_id: str, payload: DeviceUpdate) -> DeviceRead:
        scope.require_privileged("update devices")
        with self._session() as session:
            device, person, tenant = self._get_scoped_device(session, scope, device_id)
            if payload.person_id is not None and payload.person_id != device.person_id:
                person, tenant = self._get_owner(session, payload.person_id)
                device.person_id = person.id
            if payload.active is not None:
                device.active = payload.active
            session.add(device)
            session.commit()
            session.refresh(device)
        logger.info("device %s updated by %s", device_id, scope.account_id)
        return self._verification.present_device(scope, device, person, tenant)

    def set_active(self, scope: AccessScope, device_id: str, active: bool) -> DeviceRead:
        return self.update_device(scope, device_id, DeviceUpdate(active=active))

    def delete_device(self, scope: AccessScope, device_id: str) -> None:
        scope.require_privileged("delete devices")
        with self._session() as session:
            device, _, _ = self._get_scoped_device(session, scope, device_id)
            session.delete(device)
            session.commit()
        logger.info("device %s deleted by %s", device_id, scope.account_id)
