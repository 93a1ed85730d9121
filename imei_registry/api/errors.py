from __future__ import annotations

import logging

from fastapi import HTTPException, status

from imei_registry.domain.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def handle_service_error(exc: ServiceError) -> None:
    if exc.kind == ErrorKind.INTERNAL:
        logger.exception("internal error (%s): %s", exc.code, exc.message)
        raise HTTPException(status_code=STATUS_BY_KIND[exc.kind], detail="internal error") from exc
    raise HTTPException(
        status_code=STATUS_BY_KIND[exc.kind],
        detail={"code": exc.code, "message": exc.message},
    ) from exc
