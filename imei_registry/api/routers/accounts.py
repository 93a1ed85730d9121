from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from imei_registry.api.deps import Scope
from imei_registry.api.errors import handle_service_error
from imei_registry.domain.errors import ServiceError
from imei_registry.domain.models import (
    AccountActiveUpdate,
    AccountCreate,
    AccountRead,
    AccountUpdate,
)
from imei_registry.services.account_service import AccountService

router = APIRouter()


def get_account_service() -> AccountService:
    return AccountService()


Service = Annotated[AccountService, Depends(get_account_service)]


@router.post("", response_model=AccountRead, status_code=status.HTTP_201_CREATED)
def create_account(payload: AccountCreate, scope: Scope, service: Service) -> AccountRead:
    try:
        account = service.create_account(scope, payload)
        return AccountRead.model_validate(account)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.get("", response_model=list[AccountRead])
def list_accounts(scope: Scope, service: Service) -> list[AccountRead]:
    try:
        accounts = service.list_accounts(scope)
    except ServiceError as exc:
        handle_service_error(exc)
        raise
    return [AccountRead.model_validate(item) for item in accounts]


@router.get("/{account_id}", response_model=AccountRead)
def get_account(account_id: str, scope: Scope, service: Service) -> AccountRead:
    try:
        account = service.get_account(scope, account_id)
        return AccountRead.model_validate(account)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.patch("/{account_id}", response_model=AccountRead)
def update_account(account_id: str, payload: AccountUpdate, scope: Scope, service: Service) -> AccountRead:
    try:
        account = service.update_account(scope, account_id, payload)
        return AccountRead.model_validate(account)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.put("/{account_id}/active", response_model=AccountRead)
def set_account_active(
    account_id: str,
    payload: AccountActiveUpdate,
    scope: Scope,
    service: Service,
) -> AccountRead:
    try:
        account = service.set_active(scope, account_id, payload.active)
        return AccountRead.model_validate(account)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(account_id: str, scope: Scope, service: Service) -> Response:
    try:
        service.delete_account(scope, account_id)
    except ServiceError as exc:
        handle_service_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
