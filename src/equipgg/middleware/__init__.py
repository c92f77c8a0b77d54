"""Middleware registration."""

from fastapi import FastAPI

from equipgg.config import Settings
from equipgg.middleware.error_handler import setup_error_handlers
from equipgg.middleware.logging import setup_logging
from equipgg.middleware.request_context import RequestContextMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and per-request log context."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestContextMiddleware)
