from __future__ import annotations

from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from imei_registry.domain.errors import UnauthorizedError
from imei_registry.domain.scope import AccessScope, SessionClaim
from imei_registry.infra.auth import decode_access_token
from imei_registry.infra.crypto import CipherCodec, get_cipher_codec
from imei_registry.services.verification_service import VerificationService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def get_session_claim(
    request: Request,
    token: str = Depends(oauth2_scheme),
) -> SessionClaim:
    try:
        claim = SessionClaim.from_token_payload(decode_access_token(token))
    except (jwt.PyJWTError, UnauthorizedError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "unauthorized", "message": "invalid token"},
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    request.state.claim = claim
    return claim


def get_access_scope(claim: Annotated[SessionClaim, Depends(get_session_claim)]) -> AccessScope:
    return AccessScope.from_claim(claim)


def get_codec() -> CipherCodec:
    return get_cipher_codec()


def get_verification_service(codec: Annotated[CipherCodec, Depends(get_codec)]) -> VerificationService:
    return VerificationService(codec)


Scope = Annotated[AccessScope, Depends(get_access_scope)]
Verification = Annotated[VerificationService, Depends(get_verification_service)]
