from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from sqlalchemy import Column, String
from sqlmodel import Field, SQLModel

from imei_registry.domain.roles import AccountRole


def now_utc() -> datetime:
    return datetime.now(UTC)


class Tenant(SQLModel, table=True):
    __tablename__ = "tenants"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(index=True)
    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Person(SQLModel, table=True):
    __tablename__ = "persons"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    name: str = Field(index=True)
    # Ciphertext for rows written through the codec, plaintext for legacy rows.
    identifier: str = Field(index=True, unique=True)
    phone: str | None = None
    email: str | None = None
    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class Device(SQLModel, table=True):
    __tablename__ = "devices"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    person_id: str = Field(foreign_key="persons.id", index=True)
    imei: str = Field(index=True, unique=True)
    active: bool = Field(default=True, index=True)
    registered_at: datetime = Field(default_factory=now_utc, index=True)


class Account(SQLModel, table=True):
    __tablename__ = "accounts"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    tenant_id: str | None = Field(default=None, foreign_key="tenants.id", index=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    role: AccountRole = Field(
        default=AccountRole.USER,
        sa_column=Column(String, nullable=False, index=True),
    )
    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=now_utc, index=True)


class ORMReadModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class TenantCreate(BaseModel):
    name: str = PydanticField(min_length=1, max_length=200)


class TenantUpdate(BaseModel):
    name: str = PydanticField(min_length=1, max_length=200)


class TenantRead(ORMReadModel):
    id: str
    name: str
    active: bool
    created_at: datetime


class PersonCreate(BaseModel):
    tenant_id: str
    name: str = PydanticField(min_length=1, max_length=200)
    identifier: str
    phone: str | None = None
    email: str | None = None


class PersonUpdate(BaseModel):
    tenant_id: str | None = None
    name: str | None = PydanticField(default=None, min_length=1, max_length=200)
    identifier: str | None = None
    phone: str | None = None
    email: str | None = None
    active: bool | None = None


class PersonRead(BaseModel):
    id: str
    tenant_id: str
    tenant_name: str | None = None
    name: str
    identifier: str | None = None
    identifier_fingerprint: str | None = None
    phone: str | None = None
    email: str | None = None
    active: bool
    device_count: int = 0
    created_at: datetime


class DeviceCreate(BaseModel):
    imei: str
    person_id: str
    active: bool = True


class DeviceUpdate(BaseModel):
    person_id: str | None = None
    active: bool | None = None


class DeviceActiveUpdate(BaseModel):
    active: bool


class DeviceRead(BaseModel):
    id: str
    imei: str | None = None
    imei_fingerprint: str | None = None
    person_id: str
    person_name: str | None = None
    person_identifier: str | None = None
    person_phone: str | None = None
    tenant_id: str | None = None
    tenant_name: str | None = None
    active: bool
    registered_at: datetime


class DevicePage(BaseModel):
    items: list[DeviceRead]
    total: int
    page: int
    limit: int
    total_pages: int


class PersonPage(BaseModel):
    items: list[PersonRead]
    total: int
    page: int
    limit: int
    total_pages: int


class AccountCreate(BaseModel):
    username: str = PydanticField(min_length=1, max_length=100)
    password: str
    role: AccountRole = AccountRole.USER
    tenant_id: str | None = None


class AccountUpdate(BaseModel):
    password: str | None = None
    role: AccountRole | None = None
    tenant_id: str | None = None
    active: bool | None = None


class AccountActiveUpdate(BaseModel):
    active: bool


class AccountRead(ORMReadModel):
    id: str
    username: str
    role: AccountRole
    tenant_id: str | None = None
    active: bool
    created_at: datetime


class BootstrapRequest(BaseModel):
    username: str = PydanticField(min_length=1, max_length=100)
    password: str


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: AccountRole
    tenant_id: str | None = None


class ClaimRead(BaseModel):
    account_id: str
    role: AccountRole
    tenant_id: str | None = None


class VerificationRequest(BaseModel):
    imei: str


class VerifiedPerson(BaseModel):
    id: str
    name: str
    identifier: str | None = None
    phone: str | None = None


class VerifiedTenant(BaseModel):
    id: str
    name: str


class VerifiedDevice(BaseModel):
    id: str
    imei: str
    imei_fingerprint: str | None = None
    registered_at: datetime


class VerificationResponse(BaseModel):
    valid: bool
    message: str
    person: VerifiedPerson | None = None
    tenant: VerifiedTenant | None = None
    device: VerifiedDevice | None = None


class RegistryStats(BaseModel):
    tenants: int
    active_tenants: int
    persons: int
    devices: int
    active_devices: int
    accounts: int
    active_accounts: int
    accounts_by_role: dict[str, int]
