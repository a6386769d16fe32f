"""
FastAPI application entrypoint for the tenant authorization service.
"""

from __future__ import annotations

from fastapi import FastAPI

from tenant_auth.api.routes import router as api_router
from tenant_auth.core.config import get_settings
from tenant_auth.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Tenant Auth",
        version="0.1.0",
        description="OAuth2 connection management and tenant-scoped API access.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
