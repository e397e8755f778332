"""
FastAPI Application Entry Point.

This is the main application file for the Incident Registry Backend.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError

from incident_backend.app.api.v1.router import router as api_v1_router
from incident_backend.app.core.config import settings
from incident_backend.app.core.dependencies import build_backend
from incident_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from incident_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from incident_backend.app.core.redis_client import ping_redis
from incident_backend.app.services.users import UserService
from incident_backend.app.storage.local import LocalBackend

# Import models to ensure they are registered with Base
from incident_backend.app.models.user import User  # noqa: F401
from incident_backend.app.models.record import IncidentRecord  # noqa: F401
from incident_backend.app.models.audit_log import AuditLog  # noqa: F401
from incident_backend.app.models.app_settings import AppSettingsRow  # noqa: F401

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Opens the shared httpx client (webhook and bucket calls).
    2. Builds the configured storage backend; creates tables for the remote one.
    3. Bootstraps the application owner account.
    4. Closes clients on shutdown.
    """
    http_client = httpx.AsyncClient(timeout=settings.webhook_timeout_seconds)
    backend = build_backend(settings, http_client)

    if backend.name == "remote":
        from incident_backend.app.db.session import engine, Base

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    await UserService(backend).ensure_owner_account(settings.owner_username, settings.owner_password)
    logger.info("Started with %s storage backend", backend.name)

    app.state.http_client = http_client
    app.state.backend = backend
    yield

    await backend.close()
    await http_client.aclose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Incident records with image evidence, persisted and relayed to a chat webhook",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and the active storage backend
    """
    backend = getattr(request.app.state, "backend", None)
    result = {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "storage_backend": backend.name if backend else settings.storage_backend,
    }
    if isinstance(backend, LocalBackend):
        result["redis"] = "ok" if await ping_redis(backend.redis) else "unreachable"
    return result


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Incident Registry Backend API",
        "docs": "/docs",
        "health": "/health",
    }
