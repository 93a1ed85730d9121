from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar

from sqlalchemy import func
from sqlmodel import Session, col, select

from imei_registry.domain.models import Device, Person, Tenant
from imei_registry.infra.crypto import CipherCodec

RowT = TypeVar("RowT")


class LookupStrategy(Protocol):
    name: str

    def stored_value(self, codec: CipherCodec, plaintext: str) -> str: ...


@dataclass(frozen=True)
class PlaintextLookup:
    """Matches rows written before field encryption was introduced."""

    name: str = "plaintext"

    def stored_value(self, codec: CipherCodec, plaintext: str) -> str:
        return plaintext


@dataclass(frozen=True)
class CiphertextLookup:
    """Matches rows encrypted with the active key material."""

    name: str = "ciphertext"

    def stored_value(self, codec: CipherCodec, plaintext: str) -> str:
        return codec.encrypt(plaintext)


# Tried in order, first match wins. Append new migration phases at the end.
DEFAULT_LOOKUP_STRATEGIES: tuple[LookupStrategy, ...] = (PlaintextLookup(), CiphertextLookup())


def find_first(
    strategies: Sequence[LookupStrategy],
    codec: CipherCodec,
    plaintext: str,
    finder: Callable[[str], RowT | None],
) -> RowT | None:
    tried: set[str] = set()
    for strategy in strategies:
        stored_value = strategy.stored_value(codec, plaintext)
        if stored_value in tried:
            continue
        tried.add(stored_value)
        row = finder(stored_value)
        if row is not None:
            return row
    return None


class IdentifierStore:
    """Equality lookups and scope-bounded scans over the identifier columns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def device_by_stored_imei(self, stored_value: str, *, active_only: bool = False) -> Device | None:
        statement = select(Device).where(Device.imei == stored_value)
        if active_only:
            statement = statement.where(col(Device.active).is_(True))
        return self._session.exec(statement).first()

    def person_by_stored_identifier(
        self,
        stored_value: str,
        *,
        exclude_person_id: str | None = None,
    ) -> Person | None:
        statement = select(Person).where(Person.identifier == stored_value)
        if exclude_person_id is not None:
            statement = statement.where(Person.id != exclude_person_id)
        return self._session.exec(statement).first()

    def person_with_tenant(self, person_id: str) -> tuple[Person, Tenant] | None:
        statement = (
            select(Person, Tenant)
            .join(Tenant, col(Tenant.id) == col(Person.tenant_id))
            .where(Person.id == person_id)
        )
        row = self._session.exec(statement).first()
        return None if row is None else (row[0], row[1])

    def device_with_owner(self, device_id: str) -> tuple[Device, Person, Tenant] | None:
        statement = (
            select(Device, Person, Tenant)
            .join(Person, col(Person.id) == col(Device.person_id))
            .join(Tenant, col(Tenant.id) == col(Person.tenant_id))
            .where(Device.id == device_id)
        )
        row = self._session.exec(statement).first()
        return None if row is None else (row[0], row[1], row[2])

    def scan_devices(
        self,
        *,
        tenant_id: str | None,
        person_id: str | None = None,
        active: bool | None = None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[tuple[Device, Person, Tenant]]:
        statement = (
            select(Device, Person, Tenant)
            .join(Person, col(Person.id) == col(Device.person_id))
            .join(Tenant, col(Tenant.id) == col(Person.tenant_id))
        )
        if tenant_id is not None:
            statement = statement.where(Person.tenant_id == tenant_id)
        if person_id is not None:
            statement = statement.where(Device.person_id == person_id)
        if active is not None:
            statement = statement.where(col(Device.active).is_(active))
        statement = statement.order_by(col(Device.registered_at).desc(), col(Device.id))
        if offset is not None:
            statement = statement.offset(offset)
        if limit is not None:
            statement = statement.limit(limit)
        return [(row[0], row[1], row[2]) for row in self._session.exec(statement).all()]

    def count_devices(self, *, tenant_id: str | None, active: bool | None = None) -> int:
        statement = (
            select(func.count())
            .select_from(Device)
            .join(Person, col(Person.id) == col(Device.person_id))
        )
        if tenant_id is not None:
            statement = statement.where(Person.tenant_id == tenant_id)
        if active is not None:
            statement = statement.where(col(Device.active).is_(active))
        return int(self._session.exec(statement).one())

    def scan_persons(
        self,
        *,
        tenant_id: str | None,
        offset: int | None = None,
        limit: int | None = None,
    ) -> list[tuple[Person, Tenant]]:
        statement = select(Person, Tenant).join(Tenant, col(Tenant.id) == col(Person.tenant_id))
        if tenant_id is not None:
            statement = statement.where(Person.tenant_id == tenant_id)
        statement = statement.order_by(col(Person.name), col(Person.id))
        if offset is not None:
            statement = statement.offset(offset)
        if limit is not None:
            statement = statement.limit(limit)
        return [(row[0], row[1]) for row in self._session.exec(statement).all()]

    def count_persons(self, *, tenant_id: str | None) -> int:
        statement = select(func.count()).select_from(Person)
        if tenant_id is not None:
            statement = statement.where(Person.tenant_id == tenant_id)
        return int(self._session.exec(statement).one())

    def device_counts(self, person_ids: Iterable[str], *, active_only: bool = False) -> dict[str, int]:
        ids = list(person_ids)
        if not ids:
            return {}
        statement = (
            select(Device.person_id, func.count())
            .where(col(Device.person_id).in_(ids))
            .group_by(col(Device.person_id))
        )
        if active_only:
            statement = statement.where(col(Device.active).is_(True))
        return {person_id: int(count) for person_id, count in self._session.exec(statement).all()}

    def count_devices_for_person(self, person_id: str) -> int:
        statement = select(func.count()).select_from(Device).where(Device.person_id == person_id)
        return int(self._session.exec(statement).one())

    def count_devices_for_tenant(self, tenant_id: str) -> int:
        statement = (
            select(func.count())
            .select_from(Device)
            .join(Person, col(Person.id) == col(Device.person_id))
            .where(Person.tenant_id == tenant_id)
        )
        return int(self._session.exec(statement).one())
