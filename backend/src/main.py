# pyright: reportMissingTypeStubs=false
"""
Clinic Billing Backend API

A FastAPI application exposing the clinic's billing ledger: service catalog,
appointment service lines, invoices and the payment journal.

Features:
- Invoice issuing with price snapshots
- Payment application/reversal with synchronous invoice reconciliation
- Row-locked, all-or-nothing billing transactions
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, billing, catalog, directory
from core.config import BILLING_AUDIT_ENABLED, LOG_LEVEL
from core.constants import CONFLICT_RETRY_AFTER_SECONDS, CORS_ORIGINS
from core.exceptions import BillingError, ConflictError, create_error_response
from services.billing_audit_scheduler import start_billing_audit_scheduler, stop_billing_audit_scheduler

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("Clinic Billing API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("Starting Clinic Billing Backend API")

    # Database sessions are created fresh for each audit run
    if BILLING_AUDIT_ENABLED:
        try:
            await start_billing_audit_scheduler()
        except Exception as e:
            logger.exception(f"Failed to start billing audit scheduler: {e}")

    yield

    if BILLING_AUDIT_ENABLED:
        try:
            await stop_billing_audit_scheduler()
        except Exception as e:
            logger.exception(f"Error stopping billing audit scheduler: {e}")

    logger.info("Shutting down Clinic Billing Backend API")


# Create FastAPI application
app = FastAPI(
    title="Clinic Billing Backend",
    description="Invoice and payment reconciliation for clinic appointments",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    directory.router,
    prefix="/api",
    tags=["directory"],
    responses={
        404: {"description": "Resource not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    catalog.router,
    prefix="/api",
    tags=["catalog"],
    responses={
        404: {"description": "Resource not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    appointments.router,
    prefix="/api",
    tags=["appointments"],
    responses={
        404: {"description": "Resource not found"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    billing.router,
    prefix="/api/billing",
    tags=["billing"],
    responses={
        404: {"description": "Resource not found"},
        409: {"description": "Conflict, retry later"},
        422: {"description": "Validation error"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Clinic Billing Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError):
    """Render billing errors with their status code and error body."""
    headers = None
    if isinstance(exc, ConflictError):
        headers = {"Retry-After": str(CONFLICT_RETRY_AFTER_SECONDS)}
        logger.warning(f"Conflict on {request.method} {request.url.path}: {exc.message}")
    elif exc.status_code >= 500:
        logger.error(f"Billing error on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc),
        headers=headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )
