from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from imei_registry.api.routers import accounts, auth, devices, persons, tenants, verification
from imei_registry.infra.config import LOG_LEVEL
from imei_registry.infra.crypto import get_cipher_codec
from imei_registry.infra.db import check_db_ready
from imei_registry.infra.logging_config import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging(LOG_LEVEL)
    # Missing or malformed key material must stop the process here.
    get_cipher_codec()
    logger.info("imei-registry started")
    yield


app = FastAPI(
    title="imei-registry",
    description="Encrypted IMEI registry with tenant-scoped verification.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(accounts.router, prefix="/api/accounts", tags=["accounts"])
app.include_router(tenants.router, prefix="/api/tenants", tags=["tenants"])
app.include_router(persons.router, prefix="/api/persons", tags=["persons"])
app.include_router(devices.router, prefix="/api/devices", tags=["devices"])
app.include_router(verification.router, prefix="/api/verification", tags=["verification"])


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/readyz")
def readyz() -> dict[str, object]:
    db_ok = check_db_ready()
    checks = {"db": "ok" if db_ok else "fail"}
    if not db_ok:
        raise HTTPException(
            status_code=503,
            detail={"status": "not_ready", "checks": checks},
        )
    return {"status": "ready", "checks": checks}
