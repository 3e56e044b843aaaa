"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import blocked_dates, bookings, reminders, whatsapp
from shared.config import get_settings
from shared.errors import (
    BookingError,
    ConfigError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from shared.logging_config import configure_logging

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Booking Reminders API",
    version="1.0.0",
)

# Load settings for CORS configuration
settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include webhook routers
app.include_router(whatsapp.router, prefix="/webhook", tags=["webhooks"])

app.include_router(reminders.router, prefix="/reminders", tags=["reminders"])
app.include_router(bookings.router, tags=["bookings"])
app.include_router(blocked_dates.router, prefix="/blocked-dates", tags=["blocked-dates"])


# =========================================================================
# Error handling
# =========================================================================

ERROR_STATUS_CODES: dict[type[BookingError], int] = {
    ValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    ConfigError: 500,
}


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Translate booking errors into JSON responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        500,
    )

    if status_code >= 500:
        logger.error(
            f"{type(exc).__name__}: {exc}",
            extra={"request_path": request.url.path},
        )
    else:
        logger.info(
            f"{type(exc).__name__}: {exc}",
            extra={"request_path": request.url.path},
        )

    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - PostgreSQL connectivity (SELECT 1 query)

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    from sqlalchemy import text

    from database.connection import get_async_session

    health_status = {
        "status": "healthy",
        "database": "unknown",
        "whatsapp": "configured" if _whatsapp_configured() else "disabled",
    }
    status_code = 200

    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["database"] = "connected"
    except Exception:
        logger.warning("Health check: database unreachable", exc_info=True)
        health_status["database"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)


def _whatsapp_configured() -> bool:
    from shared.whatsapp_client import get_whatsapp_client

    return get_whatsapp_client().is_configured


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Booking Reminders API - Use /health for health checks"}
