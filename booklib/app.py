"""
FastAPI application entry point.
"""

from __future__ import annotations

from fastapi import FastAPI

from booklib.config import get_settings
from booklib.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="Book Library", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app
