from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from imei_registry.api.deps import Scope, Verification
from imei_registry.api.errors import handle_service_error
from imei_registry.domain.errors import ServiceError
from imei_registry.domain.models import PersonPage, TenantCreate, TenantRead, TenantUpdate
from imei_registry.services.tenant_service import TenantService
from imei_registry.services.verification_service import DEFAULT_PAGE_LIMIT

router = APIRouter()


def get_tenant_service(verification: Verification) -> TenantService:
    return TenantService(verification)


Service = Annotated[TenantService, Depends(get_tenant_service)]


@router.post("", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
def create_tenant(payload: TenantCreate, scope: Scope, service: Service) -> TenantRead:
    try:
        tenant = service.create_tenant(scope, payload)
        return TenantRead.model_validate(tenant)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.get("", response_model=list[TenantRead])
def list_tenants(scope: Scope, service: Service) -> list[TenantRead]:
    try:
        tenants = service.list_tenants(scope)
    except ServiceError as exc:
        handle_service_error(exc)
        raise
    return [TenantRead.model_validate(item) for item in tenants]


@router.get("/{tenant_id}", response_model=TenantRead)
def get_tenant(tenant_id: str, scope: Scope, service: Service) -> TenantRead:
    try:
        tenant = service.get_tenant(scope, tenant_id)
        return TenantRead.model_validate(tenant)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.patch("/{tenant_id}", response_model=TenantRead)
def update_tenant(tenant_id: str, payload: TenantUpdate, scope: Scope, service: Service) -> TenantRead:
    try:
        tenant = service.update_tenant(scope, tenant_id, payload)
        return TenantRead.model_validate(tenant)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tenant(tenant_id: str, scope: Scope, service: Service) -> Response:
    try:
        service.deactivate_tenant(scope, tenant_id)
    except ServiceError as exc:
        handle_service_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{tenant_id}/persons", response_model=PersonPage)
def list_tenant_persons(
    tenant_id: str,
    scope: Scope,
    service: Service,
    search: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> PersonPage:
    try:
        return service.list_persons(scope, tenant_id, search=search, page=page, limit=limit)
    except ServiceError as exc:
        handle_service_error(exc)
        raise
