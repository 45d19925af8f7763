"""Instrumented FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from apimon.config import Settings, get_settings
from apimon.logging import configure_logging
from apimon.middleware import ApiMonitoringMiddleware
from apimon.routes import health_router, router
from apimon.service import ApiMonitor

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    monitor: ApiMonitor | None = None,
) -> FastAPI:
    """Build the app with one monitor wired into the middleware and read API."""
    settings = settings or get_settings()
    monitor = monitor or ApiMonitor(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        logger.info("Starting API monitor...")
        await monitor.start()

        yield

        logger.info("Shutting down API monitor...")
        await monitor.stop()

    app = FastAPI(
        title="apimon",
        description="In-process API monitoring and dashboard",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.monitor = monitor
    app.add_middleware(ApiMonitoringMiddleware, monitor=monitor)

    app.include_router(health_router)
    app.include_router(router)
    return app


def build_app() -> FastAPI:
    """Uvicorn factory entry point (``apimon.main:build_app``)."""
    settings = get_settings()
    configure_logging(log_format=settings.log_format, debug=settings.debug)
    return create_app(settings)
