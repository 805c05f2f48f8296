"""
FastAPI application entrypoint for the Cafe24 logistics bridge.
"""

from __future__ import annotations

from fastapi import FastAPI

from shipbridge.api.routes import router as api_router
from shipbridge.core.config import get_settings
from shipbridge.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Shipbridge",
        version="0.1.0",
        description=(
            "Bridges logistics shipment webhooks to the Cafe24 Admin API and "
            "manages per-mall OAuth credentials."
        ),
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
