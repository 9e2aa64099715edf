"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from labor_billing.api.routes import billing_router, health_router
from labor_billing.database import dispose_db, init_db
from labor_billing.exceptions import (
    AccountingSyncError,
    BillingError,
    ConfigurationError,
    DocumentNotFoundError,
    LinkageConflictError,
    MissingCustomerError,
    NothingToBillError,
    PayeeCreationError,
    UnresolvedRateError,
    ZeroOrMissingRateError,
)

logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[BillingError], int] = {
    NothingToBillError: status.HTTP_400_BAD_REQUEST,
    DocumentNotFoundError: status.HTTP_404_NOT_FOUND,
    LinkageConflictError: status.HTTP_409_CONFLICT,
    UnresolvedRateError: 422,
    ZeroOrMissingRateError: 422,
    MissingCustomerError: 422,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    PayeeCreationError: status.HTTP_502_BAD_GATEWAY,
    AccountingSyncError: status.HTTP_502_BAD_GATEWAY,
}


def error_status(exc: BillingError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_400_BAD_REQUEST


def error_data(exc: BillingError) -> dict[str, list[str]]:
    """Structured details an operator needs to fix the problem."""
    if isinstance(exc, UnresolvedRateError):
        return {
            "people": sorted({b.person_name for b in exc.blockers}),
            "entry_ids": [str(e) for b in exc.blockers for e in b.entry_ids],
        }
    if isinstance(exc, ZeroOrMissingRateError):
        return {"lines": [line.product_name for line in exc.lines]}
    if isinstance(exc, LinkageConflictError):
        return {"entry_ids": [str(e) for e in exc.conflicting_entry_ids]}
    if isinstance(exc, MissingCustomerError):
        return {"entry_ids": [str(e) for e in exc.entry_ids]}
    return {}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    init_db()
    yield
    # Shutdown
    await dispose_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Labor Billing Engine API",
        description="Invoices and vendor bills from approved time entries",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(BillingError)
    async def billing_exception_handler(request: Request, exc: BillingError) -> JSONResponse:
        """Map engine errors to HTTP statuses."""
        status_code = error_status(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.message, "code": exc.code, "data": error_data(exc)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(billing_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
