"""
FastAPI Application Factory

Creates and configures the report API application.
"""

import os
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import REGISTRY, CollectorRegistry, make_asgi_app, multiprocess

from src.config.settings import Settings, get_settings
from src.serving.api.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from src.serving.api.routes import analytics_router, health_router


def create_api_app(
    settings: Optional[Settings] = None,
    lifespan: Optional[Callable] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Application settings (cached settings when omitted)
        lifespan: Startup/shutdown context manager

    Returns:
        Configured FastAPI app instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Storefront Analytics API",
        description="Bot- and abuse-filtered business metrics over the storefront event log",
        version=settings.version,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(analytics_router, prefix="/api/v1/analytics", tags=["Analytics"])

    if settings.monitoring.enable_metrics:
        app.mount("/metrics", make_asgi_app(registry=_metrics_registry()))

    return app


def _metrics_registry() -> CollectorRegistry:
    """Default registry, or a multiprocess collector under Gunicorn workers"""
    if not os.getenv("PROMETHEUS_MULTIPROC_DIR"):
        return REGISTRY
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    return registry
