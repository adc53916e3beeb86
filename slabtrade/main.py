import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from slabtrade.config import Settings, get_settings
from slabtrade.core.errors import (
    AuthorizationDenied,
    Conflict,
    DomainError,
    InsufficientStock,
    InvariantViolation,
    NotFound,
)
from slabtrade.core.logging import setup_logging
from slabtrade.database import init_db
from slabtrade.routers import (
    batches_router,
    health_router,
    reservations_router,
    sales_router,
    sharing_router,
)
from slabtrade.scheduler.expiry_sweep import build_scheduler

logger = logging.getLogger(__name__)

setup_logging()
settings: Settings = get_settings()

init_db()

expiry_scheduler = build_scheduler(settings)

# Checked in order; the first matching base class wins.
_STATUS_BY_ERROR = (
    (InsufficientStock, 409),
    (Conflict, 409),
    (AuthorizationDenied, 403),
    (NotFound, 404),
    (InvariantViolation, 500),
)
_CONFLICT_CODES = {
    "ALREADY_CONVERTED",
    "INVALID_RESERVATION_STATE",
    "BATCH_NOT_AVAILABLE",
}


def status_for(exc: DomainError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    if exc.code in _CONFLICT_CODES:
        return 409
    return 400


@asynccontextmanager
async def lifespan(_app: FastAPI):
    if settings.EXPIRY_SWEEP_ENABLED:
        expiry_scheduler.start()
    try:
        yield
    finally:
        expiry_scheduler.stop()


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.include_router(health_router)
app.include_router(batches_router)
app.include_router(reservations_router)
app.include_router(sharing_router)
app.include_router(sales_router)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.to_dict()})


__all__ = ["app", "status_for"]
