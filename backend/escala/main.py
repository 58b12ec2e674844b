from __future__ import annotations

import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from escala.api.deps import get_ledger
from escala.api.routers import api_router
from escala.config import settings
from escala.db import get_db
from escala.errors import (
    ForbiddenTarget,
    IdentityNotResolved,
    LockError,
    PermissionDenied,
    ScheduleError,
    StorageFatal,
    StorageTransient,
    ValidationError,
)
from escala.services.ledger import AssignmentLedger
from escala.services.schedule_config import get_schedule_config
from escala.services.storage import guarded


logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[ScheduleError], int] = {
    IdentityNotResolved: status.HTTP_401_UNAUTHORIZED,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    LockError: status.HTTP_423_LOCKED,
    ForbiddenTarget: status.HTTP_403_FORBIDDEN,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    StorageTransient: status.HTTP_503_SERVICE_UNAVAILABLE,
    StorageFatal: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(exc: ScheduleError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


app = FastAPI(title="Escala Semanal", default_response_class=ORJSONResponse)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api")


@app.exception_handler(ScheduleError)
async def _schedule_error_handler(request: Request, exc: ScheduleError) -> ORJSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
    return ORJSONResponse(status_code=code, content={"error": exc.kind, "detail": exc.message})


def _format_request_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "invalid request"


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    detail = _format_request_errors(exc)
    logger.info("%s %s rejected (%s): %s", request.method, request.url.path, ValidationError.kind, detail)
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": ValidationError.kind, "detail": detail},
    )


@app.get("/health")
async def health(
    db: AsyncSession = Depends(get_db),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> dict:
    # Storage failures surface through the ScheduleError handler as 503/500.
    await guarded(db.execute(text("SELECT 1")), timeout=ledger.config.storage_timeout)
    return {
        "status": "ok",
        "timezone": ledger.config.timezone,
        "week": ledger.current_period().iso(),
        "officers": len(ledger.config.roster),
    }


@app.on_event("startup")
async def _startup() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = get_schedule_config()
    logger.info(
        "Escala ready: %s officers, timezone=%s, lock close hour=%s",
        len(config.roster),
        config.timezone,
        config.close_hour,
    )
