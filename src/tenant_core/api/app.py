"""FastAPI application with lifespan management."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tenant_core.api.errors import register_exception_handlers
from tenant_core.api.middleware import RequestLoggingMiddleware
from tenant_core.api.routes.orders import router as orders_router
from tenant_core.api.routes.tenants import router as tenants_router
from tenant_core.api.schemas import HealthResponse
from tenant_core.audit import AuditRecorder
from tenant_core.auth.credentials import CredentialParser
from tenant_core.config import Settings, get_settings
from tenant_core.errors import TenantCoreError
from tenant_core.logging_config import configure_logging
from tenant_core.storage.base import StorageProvider
from tenant_core.storage.factory import create_storage_provider

logger = structlog.get_logger()

HEALTH_CHECK_TIMEOUT = 5.0


def _attach_storage(app: FastAPI, provider: StorageProvider) -> None:
    app.state.provider = provider
    app.state.audit = AuditRecorder(provider)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Configure logging.
        - Create the storage provider (connects the pool for postgres),
          unless one was injected.
    Shutdown:
        - Wait for pending audit writes.
        - Close the storage provider (dispose connection pool).
    """
    settings: Settings = app.state.settings
    configure_logging(
        environment=str(settings.environment),
        log_level=settings.log_level,
    )
    if app.state.provider is None:
        _attach_storage(app, create_storage_provider(settings))

    logger.info(
        "app_started",
        environment=str(settings.environment),
        storage_backend=str(settings.storage_backend),
    )
    yield

    await app.state.audit.drain()
    await app.state.provider.close()
    logger.info("app_stopped")


def create_app(
    settings: Settings | None = None,
    provider: StorageProvider | None = None,
) -> FastAPI:
    """Build the application.

    Args:
        settings: Application settings; the cached singleton by default.
        provider: Pre-built storage provider (tests); created at startup
            from ``settings`` when omitted.
    """
    settings = settings or get_settings()
    app = FastAPI(
        title="Tenant Core",
        description="Tenant isolation, access control, quotas and audit",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.is_dev,
    )
    app.state.settings = settings
    app.state.credential_parser = CredentialParser(
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
        subject_delimiter=settings.jwt_subject_delimiter,
    )
    app.state.provider = None
    if provider is not None:
        _attach_storage(app, provider)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allowed_methods,
        allow_headers=settings.cors_allowed_headers,
    )
    register_exception_handlers(app)

    @app.get(
        "/health",
        response_model=HealthResponse,
        responses={503: {"model": HealthResponse}},
    )
    async def health() -> JSONResponse:
        """Deep health check: verifies storage connectivity."""
        checks: dict[str, str] = {}
        overall = "ok"

        try:
            async with app.state.provider.unit_of_work() as backend:
                await asyncio.wait_for(
                    backend.count("tenants", {}), timeout=HEALTH_CHECK_TIMEOUT
                )
            checks["storage"] = "ok"
        except (TimeoutError, TenantCoreError) as e:
            logger.warning("health_check_storage_error", error=type(e).__name__)
            checks["storage"] = f"error: {type(e).__name__}"
            overall = "degraded"

        status_code = 200 if overall == "ok" else 503
        body = HealthResponse(
            status=overall, checks=checks, timestamp=datetime.now(UTC).replace(microsecond=0)
        )
        return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

    app.include_router(tenants_router, prefix="/api/v1")
    app.include_router(orders_router, prefix="/api/v1")
    return app


app = create_app()
