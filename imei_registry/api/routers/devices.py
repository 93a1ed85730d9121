from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from imei_registry.api.deps import Scope, Verification
from imei_registry.api.errors import handle_service_error
from imei_registry.domain.errors import ServiceError
from imei_registry.domain.models import (
    DeviceActiveUpdate,
    DeviceCreate,
    DevicePage,
    DeviceRead,
    DeviceUpdate,
)
from imei_registry.services.device_service import DeviceService
from imei_registry.services.verification_service import DEFAULT_PAGE_LIMIT

router = APIRouter()


def get_device_service(verification: Verification) -> DeviceService:
    return DeviceService(verification)


Service = Annotated[DeviceService, Depends(get_device_service)]


@router.post("", response_model=DeviceRead, status_code=status.HTTP_201_CREATED)
def register_device(payload: DeviceCreate, scope: Scope, service: Service) -> DeviceRead:
    try:
        return service.register_device(scope, payload)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.get("", response_model=DevicePage)
def list_devices(
    scope: Scope,
    verification: Verification,
    tenant_id: str | None = None,
    active: bool | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
) -> DevicePage:
    try:
        return verification.search_devices(
            scope,
            search=search,
            tenant_id=tenant_id,
            active=active,
            page=page,
            limit=limit,
        )
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.get("/{device_id}", response_model=DeviceRead)
def get_device(device_id: str, scope: Scope, service: Service) -> DeviceRead:
    try:
        return service.get_device(scope, device_id)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.patch("/{device_id}", response_model=DeviceRead)
def update_device(device_id: str, payload: DeviceUpdate, scope: Scope, service: Service) -> DeviceRead:
    try:
        return service.update_device(scope, device_id, payload)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.put("/{device_id}/active", response_model=DeviceRead)
def set_device_active(
    device_id: str,
    payload: DeviceActiveUpdate,
    scope: Scope,
    service: Service,
) -> DeviceRead:
    try:
        return service.set_active(scope, device_id, payload.active)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_device(device_id: str, scope: Scope, service: Service) -> Response:
    try:
        service.delete_device(scope, device_id)
    except ServiceError as exc:
        handle_service_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
