"""
Central API route registration. All HTTP controllers are mounted here with /api prefix.
"""
import logging
from fastapi import FastAPI

from sheetsync.http.controllers import (
    sheets,
    workers,
)

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    app.include_router(sheets.router, prefix=f"{settings.API_PREFIX}/sheets", tags=["sheets"])
    app.include_router(workers.router, prefix=f"{settings.API_PREFIX}/workers", tags=["workers"])
    logger.info("Registered API routes under %s", settings.API_PREFIX)
