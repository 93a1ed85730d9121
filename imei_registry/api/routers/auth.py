from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status

from imei_registry.api.deps import get_session_claim
from imei_registry.api.errors import handle_service_error
from imei_registry.domain.errors import ServiceError
from imei_registry.domain.models import (
    AccountRead,
    BootstrapRequest,
    ClaimRead,
    LoginRequest,
    TokenResponse,
)
from imei_registry.domain.roles import AccountRole
from imei_registry.domain.scope import SessionClaim
from imei_registry.infra.auth import create_access_token
from imei_registry.services.account_service import AccountService

router = APIRouter()


def get_account_service() -> AccountService:
    return AccountService()


Claim = Annotated[SessionClaim, Depends(get_session_claim)]
Service = Annotated[AccountService, Depends(get_account_service)]


@router.post("/bootstrap", response_model=AccountRead, status_code=status.HTTP_201_CREATED)
def bootstrap(payload: BootstrapRequest, service: Service) -> AccountRead:
    try:
        account = service.bootstrap(payload)
        return AccountRead.model_validate(account)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, service: Service) -> TokenResponse:
    try:
        account = service.authenticate(payload.username, payload.password)
    except ServiceError as exc:
        handle_service_error(exc)
        raise
    role = AccountRole(account.role)
    token = create_access_token(account_id=account.id, role=role, tenant_id=account.tenant_id)
    return TokenResponse(access_token=token, role=role, tenant_id=account.tenant_id)


@router.get("/me", response_model=ClaimRead)
def me(claim: Claim) -> ClaimRead:
    return ClaimRead(account_id=claim.account_id, role=claim.role, tenant_id=claim.tenant_id)
