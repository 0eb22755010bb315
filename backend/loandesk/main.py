"""LoanDesk API - FastAPI Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from loandesk import models  # noqa: F401  registers tables on Base.metadata
from loandesk.api import loans, notifications, policy, quotations
from loandesk.config import settings
from loandesk.database import Base, counter_engine, engine
from loandesk.logging_config import setup_logging
from loandesk.middleware.error_capture import ErrorCaptureMiddleware
from loandesk.services.errors import (
    EngineError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup (dev only); in prod the schema is managed separately."""
    setup_logging(settings.log_level, settings.log_format)
    if settings.environment == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    logger.info("LoanDesk API started (%s)", settings.environment)
    yield
    await engine.dispose()
    await counter_engine.dispose()


app = FastAPI(
    title="LoanDesk API",
    description="Quotation and loan origination engine",
    version=VERSION,
    lifespan=lifespan,
)


# ── Engine error mapping ─────────────────────────────────────────

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    request.state.engine_error = exc
    return JSONResponse(
        status_code=422,
        content={"detail": str(exc), "errors": exc.field_errors},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    request.state.engine_error = exc
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(TransientStorageError)
async def transient_storage_handler(request: Request, exc: TransientStorageError):
    request.state.engine_error = exc
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable, please retry"},
        headers={"Retry-After": "1"},
    )


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError):
    request.state.engine_error = exc
    logger.error("Unmapped engine error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})


# Error capture middleware
app.add_middleware(ErrorCaptureMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Requested-With"],
)

# Routers
app.include_router(quotations.router, prefix="/api/quotations", tags=["Quotations"])
app.include_router(loans.router, prefix="/api/loans", tags=["Loans"])
app.include_router(policy.router, prefix="/api/policy", tags=["Policy"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "loandesk-api", "version": VERSION}
