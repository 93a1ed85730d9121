from __future__ import annotations

from fastapi import APIRouter

from imei_registry.api.deps import Scope, Verification
from imei_registry.api.errors import handle_service_error
from imei_registry.domain.errors import ServiceError
from imei_registry.domain.models import RegistryStats, VerificationRequest, VerificationResponse

router = APIRouter()


@router.post("/verify", response_model=VerificationResponse)
def verify_imei(payload: VerificationRequest, scope: Scope, service: Verification) -> VerificationResponse:
    try:
        result = service.verify(scope, payload.imei)
        return service.to_response(scope, result)
    except ServiceError as exc:
        handle_service_error(exc)
        raise


@router.get("/stats", response_model=RegistryStats)
def registry_stats(scope: Scope, service: Verification) -> RegistryStats:
    try:
        return service.stats(scope)
    except ServiceError as exc:
        handle_service_error(exc)
        raise
