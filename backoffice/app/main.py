"""
FastAPI Application Entry Point.

This is the main application file for the Agency Back-Office ledger service.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from backoffice.app.core.config import settings
from backoffice.app.core.observability import ObservabilityMiddleware, configure_logging
from backoffice.app.core.redis_client import ping_redis
from backoffice.app.api.v1.router import router as api_v1_router
from backoffice.app.db.session import engine, Base
from backoffice.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from backoffice.app.models.directory import Client, Operator, Booking
from backoffice.app.models.agency_counter import AgencyCounter
from backoffice.app.models.finance_grant import FinanceSectionGrant
from backoffice.app.models.payment_method import FinancePaymentMethod
from backoffice.app.models.credit_account import CreditAccount
from backoffice.app.models.receipt import Receipt
from backoffice.app.models.receipt_payment import ReceiptPayment
from backoffice.app.models.credit_entry import CreditEntry
from backoffice.app.models.client_payment import ClientPayment
from backoffice.app.models.client_payment_audit import ClientPaymentAudit

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup and disposes the engine on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Credit ledger, receipts and client payment schedules for travel agencies",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "ok" if await ping_redis() else "unavailable",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to the Agency Back-Office Ledger API",
        "docs": "/docs",
        "health": "/health",
    }
