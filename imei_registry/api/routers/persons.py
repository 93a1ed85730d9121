from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from imei_registry.api.deps import Scope, Verification
from imei_registry.api.errors import handle_service_error
from imei_registry.domain.errors import ServiceError
from imei_registry.domain.models import DeviceRead, PersonCreate, PersonPage, PersonRead, PersonUpdate
from imei_registry.services.person_service import PersonService
from imei_registry.services.verification_service import DEFAULT_PAGE_LIMIT

router = APIRouter()


def get_person_service(verification: Verification) -> PersonService:
    return PersonService(verification)


Service = Annotated[PersonService, Depends(get_person_service)]


@router.post("", response_model=PersonRead, status_code=status.HTTP_201_CREATED)
def create_person(payload: PersonCreate, scope: Scope, service: Service) -> PersonRead:
    try:
        return service.create_person(scope, payload)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.get("", response_model=PersonPage)
def list_persons(
    scope: Scope,
    verification: Verification,
    tenant_id: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> PersonPage:
    try:
        return verification.search_persons(scope, search=search, tenant_id=tenant_id, page=page, limit=limit)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.get("/{person_id}", response_model=PersonRead)
def get_person(person_id: str, scope: Scope, service: Service) -> PersonRead:
    try:
        return service.get_person(scope, person_id)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.patch("/{person_id}", response_model=PersonRead)
def update_person(person_id: str, payload: PersonUpdate, scope: Scope, service: Service) -> PersonRead:
    try:
        return service.update_person(scope, person_id, payload)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.delete("/{person_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_person(person_id: str, scope: Scope, service: Service) -> Response:
    try:
        service.delete_person(scope, person_id)
    except ServiceError as exc:
        handle_service_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{person_id}/devices", response_model=list[DeviceRead])
def list_person_devices(person_id: str, scope: Scope, service: Service) -> list[DeviceRead]:
    try:
        return service.list_devices(scope, person_id)
    except ServiceError as exc:
        handle_service_error(exc)
        raise
