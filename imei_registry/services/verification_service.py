"""Matching plaintext identifiers against encrypted columns.

Equality matching goes through the ordered lookup strategies so rows written
before encryption and rows written through the codec are both found by the
same query path. Substring search cannot use the column indexes, so it
materializes the rows visible to the caller's scope. Only callers entitled
to see identifiers get them decrypted in memory and matched; everyone else
matches on names.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from imei_registry.domain.errors import InternalError, InvalidInputError
from imei_registry.domain.models import (
    Account,
    Device,
    DevicePage,
    DeviceRead,
    Person,
    PersonPage,
    PersonRead,
    RegistryStats,
    Tenant,
    VerificationResponse,
    VerifiedDevice,
    VerifiedPerson,
    VerifiedTenant,
)
from imei_registry.domain.scope import AccessScope
from imei_registry.domain.validation import validate_verify_imei
from imei_registry.infra.crypto import CipherCodec, CipherIntegrityError
from imei_registry.infra.db import get_engine
from imei_registry.services.identifier_store import (
    DEFAULT_LOOKUP_STRATEGIES,
    IdentifierStore,
    LookupStrategy,
    find_first,
)

logger = logging.getLogger(__name__)

MAX_PAGE_LIMIT = 100
DEFAULT_PAGE_LIMIT = 20


class VerificationOutcome(StrEnum):
    VERIFIED = "verified"
    DEVICE_NOT_FOUND = "device_missing"
    OWNER_MISSING = "owner_missing"


OUTCOME_MESSAGES: dict[VerificationOutcome, str] = {
    VerificationOutcome.VERIFIED: "imei verified",
    VerificationOutcome.DEVICE_NOT_FOUND: "not found",
    VerificationOutcome.OWNER_MISSING: "device not assigned to an active person",
}


@dataclass(frozen=True)
class VerificationResult:
    outcome: VerificationOutcome
    imei: str
    device: Device | None = None
    person: Person | None = None
    tenant: Tenant | None = None

    @property
    def valid(self) -> bool:
        return self.outcome == VerificationOutcome.VERIFIED

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self.outcome]


def _page_window(page: int, limit: int) -> tuple[int, int]:
    if page < 1:
        raise InvalidInputError("page must be 1 or greater", reason="paging")
    if not 1 <= limit <= MAX_PAGE_LIMIT:
        raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_LIMIT}", reason="paging")
    return (page - 1) * limit, limit


def _total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


def _contains(value: str | None, term: str) -> bool:
    return value is not None and term in value.lower()


class VerificationService:
    def __init__(
        self,
        codec: CipherCodec,
        strategies: Sequence[LookupStrategy] = DEFAULT_LOOKUP_STRATEGIES,
    ) -> None:
        self._codec = codec
        self._strategies = tuple(strategies)

    @property
    def codec(self) -> CipherCodec:
        return self._codec

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def find_device(self, store: IdentifierStore, imei: str, *, active_only: bool = False) -> Device | None:
        return find_first(
            self._strategies,
            self._codec,
            imei,
            lambda stored: store.device_by_stored_imei(stored, active_only=active_only),
        )

    def find_person(
        self,
        store: IdentifierStore,
        identifier: str,
        *,
        exclude_person_id: str | None = None,
    ) -> Person | None:
        return find_first(
            self._strategies,
            self._codec,
            identifier,
            lambda stored: store.person_by_stored_identifier(stored, exclude_person_id=exclude_person_id),
        )

    def verify(self, scope: AccessScope, imei: str) -> VerificationResult:
        value = validate_verify_imei(imei)
        try:
            with self._session() as session:
                store = IdentifierStore(session)
                device = self.find_device(store, value, active_only=True)
                owner = None if device is None else store.person_with_tenant(device.person_id)
        except SQLAlchemyError as exc:
            logger.exception("verification lookup failed for imei %s", self._codec.fingerprint(value))
            raise InternalError("verification failed") from exc

        if device is None:
            logger.info("verification miss for imei %s", self._codec.fingerprint(value))
            return VerificationResult(VerificationOutcome.DEVICE_NOT_FOUND, imei=value)
        if owner is not None:
            scope.ensure_tenant(owner[0].tenant_id)
        if owner is None or not owner[0].active or not owner[1].active:
            logger.info("device %s has no active owner", device.id)
            return VerificationResult(VerificationOutcome.OWNER_MISSING, imei=value, device=device)
        person, tenant = owner
        return VerificationResult(
            VerificationOutcome.VERIFIED,
            imei=value,
            device=device,
            person=person,
            tenant=tenant,
        )

    def reveal(self, stored_value: str) -> str:
        try:
            return self._codec.decrypt(stored_value)
        except CipherIntegrityError as exc:
            logger.error("stored value failed strict decryption")
            raise InternalError("stored value could not be decrypted", reason="data_integrity") from exc

    def to_response(self, scope: AccessScope, result: VerificationResult) -> VerificationResponse:
        if not result.valid or result.device is None or result.person is None or result.tenant is None:
            return VerificationResponse(valid=False, message=result.message)
        person = result.person
        identifier = self.reveal(person.identifier) if scope.can_reveal_identifiers else None
        return VerificationResponse(
            valid=True,
            message=result.message,
            person=VerifiedPerson(id=person.id, name=person.name, identifier=identifier, phone=person.phone),
            tenant=VerifiedTenant(id=result.tenant.id, name=result.tenant.name),
            device=VerifiedDevice(
                id=result.device.id,
                imei=result.imei,
                imei_fingerprint=self._codec.fingerprint(result.imei),
                registered_at=result.device.registered_at,
            ),
        )

    def present_device(
        self,
        scope: AccessScope,
        device: Device,
        person: Person | None = None,
        tenant: Tenant | None = None,
    ) -> DeviceRead:
        imei: str | None = None
        fingerprint: str | None = None
        person_identifier: str | None = None
        # Stored values are only decrypted for callers allowed to see them.
        if scope.can_reveal_identifiers:
            imei = self.reveal(device.imei)
            fingerprint = self._codec.fingerprint(imei)
            if person is not None:
                person_identifier = self.reveal(person.identifier)
        return DeviceRead(
            id=device.id,
            imei=imei,
            imei_fingerprint=fingerprint,
            person_id=device.person_id,
            person_name=person.name if person is not None else None,
            person_identifier=person_identifier,
            person_phone=person.phone if person is not None else None,
            tenant_id=person.tenant_id if person is not None else None,
            tenant_name=tenant.name if tenant is not None else None,
            active=device.active,
            registered_at=device.registered_at,
        )

    def present_person(
        self,
        scope: AccessScope,
        person: Person,
        tenant: Tenant | None = None,
        device_count: int = 0,
    ) -> PersonRead:
        identifier: str | None = None
        fingerprint: str | None = None
        if scope.can_reveal_identifiers:
            identifier = self.reveal(person.identifier)
            fingerprint = self._codec.fingerprint(identifier)
        return PersonRead(
            id=person.id,
            tenant_id=person.tenant_id,
            tenant_name=tenant.name if tenant is not None else None,
            name=person.name,
            identifier=identifier,
            identifier_fingerprint=fingerprint,
            phone=person.phone,
            email=person.email,
            active=person.active,
            device_count=device_count,
            created_at=person.created_at,
        )

    def _device_matches(self, scope: AccessScope, item: DeviceRead, term: str) -> bool:
        if scope.can_reveal_identifiers and _contains(item.imei, term):
            return True
        return _contains(item.person_name, term) or _contains(item.tenant_name, term)

    def _person_matches(self, scope: AccessScope, item: PersonRead, term: str) -> bool:
        if scope.can_reveal_identifiers and _contains(item.identifier, term):
            return True
        return (
            _contains(item.name, term)
            or _contains(item.tenant_name, term)
            or _contains(item.email, term)
            or _contains(item.phone, term)
        )

    def search_devices(
        self,
        scope: AccessScope,
        *,
        search: str | None = None,
        tenant_id: str | None = None,
        active: bool | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> DevicePage:
        scoped_tenant_id = scope.tenant_filter(tenant_id)
        offset, limit = _page_window(page, limit)
        term = (search or "").strip().lower()
        with self._session() as session:
            store = IdentifierStore(session)
            if not term:
                total = store.count_devices(tenant_id=scoped_tenant_id, active=active)
                rows = store.scan_devices(tenant_id=scoped_tenant_id, active=active, offset=offset, limit=limit)
                items = [self.present_device(scope, *row) for row in rows]
            else:
                rows = store.scan_devices(tenant_id=scoped_tenant_id, active=active)
                matched = [
                    item
                    for item in (self.present_device(scope, *row) for row in rows)
                    if self._device_matches(scope, item, term)
                ]
                total = len(matched)
                items = matched[offset : offset + limit]
        return DevicePage(items=items, total=total, page=page, limit=limit, total_pages=_total_pages(total, limit))

    def search_persons(
        self,
        scope: AccessScope,
        *,
        search: str | None = None,
        tenant_id: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> PersonPage:
        scoped_tenant_id = scope.tenant_filter(tenant_id)
        offset, limit = _page_window(page, limit)
        term = (search or "").strip().lower()
        with self._session() as session:
            store = IdentifierStore(session)
            if not term:
                total = store.count_persons(tenant_id=scoped_tenant_id)
                rows = store.scan_persons(tenant_id=scoped_tenant_id, offset=offset, limit=limit)
            else:
                rows = store.scan_persons(tenant_id=scoped_tenant_id)
            counts = store.device_counts(person.id for person, _ in rows)
        items = [
            self.present_person(scope, person, tenant, counts.get(person.id, 0)) for person, tenant in rows
        ]
        if term:
            items = [item for item in items if self._person_matches(scope, item, term)]
            total = len(items)
            items = items[offset : offset + limit]
        return PersonPage(items=items, total=total, page=page, limit=limit, total_pages=_total_pages(total, limit))

    def stats(self, scope: AccessScope) -> RegistryStats:
        scope.require_privileged("read registry statistics")
        with self._session() as session:

            def count(model: Any, *conditions: Any) -> int:
                statement = select(func.count()).select_from(model)
                for condition in conditions:
                    statement = statement.where(condition)
                return int(session.exec(statement).one())

            by_role = session.exec(select(Account.role, func.count()).group_by(col(Account.role))).all()
            return RegistryStats(
                tenants=count(Tenant),
                active_tenants=count(Tenant, col(Tenant.active).is_(True)),
                persons=count(Person),
                devices=count(Device),
                active_devices=count(Device, col(Device.active).is_(True)),
                accounts=count(Account),
                active_accounts=count(Account, col(Account.active).is_(True)),
                accounts_by_role={str(role): int(total) for role, total in by_role},
            )
