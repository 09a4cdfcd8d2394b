"""Autoflow - FastAPI Application."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.routes import health
from api.v1.router import api_v1_router
from app.config import Settings, get_settings
from core.logging_config import setup_logging
from core.middleware import RequestTrackingMiddleware, setup_exception_handlers
from db.database import AsyncSessionLocal, close_db, init_db
from services.runtime import build_runtime
from steps.implementations.send_email import SmtpRelay

logger = logging.getLogger(__name__)


def _make_lifespan(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]],
    http_transport: Optional[httpx.AsyncBaseTransport],
    mail_relay: Optional[SmtpRelay],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application startup and shutdown events."""
        # Startup
        setup_logging()

        owns_database = session_factory is None
        if owns_database:
            # Unreachable database is fatal here
            await init_db()
        app.state.session_factory = session_factory or AsyncSessionLocal

        runtime = build_runtime(
            settings,
            app.state.session_factory,
            http_transport=http_transport,
            mail_relay=mail_relay,
        )
        app.state.runtime = runtime
        logger.info("[startup] Workflow execution engine ready")

        if settings.runs_inprocess_scheduler:
            await runtime.scheduler.start()
        elif settings.SCHEDULER_ENABLED:
            logger.info(f"[startup] Scheduler delegated to mode '{settings.SCHEDULER_MODE}'")
        else:
            logger.info("[startup] Scheduler disabled")

        logger.info(
            f"[startup] {settings.APP_NAME} v{settings.APP_VERSION} started ({settings.ENVIRONMENT})"
        )
        yield
        # Shutdown
        logger.info("[shutdown] Application shutting down...")
        await runtime.scheduler.stop()
        await runtime.runner.drain(timeout=30.0)
        if owns_database:
            await close_db()

    return lifespan


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    mail_relay: Optional[SmtpRelay] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Defaults to the environment settings
        session_factory: Use an existing database instead of the configured one
        http_transport: Outgoing transport for http_request steps
        mail_relay: Relay for send_email steps
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Workflow automation engine: scheduled, webhook and manual "
                    "multi-step workflows.",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=_make_lifespan(settings, session_factory, http_transport, mail_relay),
    )
    app.state.settings = settings

    # Request tracking middleware
    app.add_middleware(RequestTrackingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    # Global exception handlers
    setup_exception_handlers(app)

    # Root health check (unversioned, for load balancers / k8s probes)
    app.include_router(health.router, prefix="/api", tags=["Health"])

    # Versioned API, all business endpoints under /api/v1
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
