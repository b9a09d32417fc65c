"""
Bookshelf Server Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.
"""

from __future__ import annotations

import logging
from fastapi import FastAPI

from .config import settings
from .core.errors import (
    ContentNotFound,
    ContentUnavailable,
    content_not_found_handler,
    content_unavailable_handler,
    unhandled_exception_handler,
)

from .api import (
    admin_routes,
    analytics_routes,
    content_routes,
    guestbook_routes,
    health_routes,
    history_routes,
    search_routes,
)


logger = logging.getLogger("bookshelf.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="bookshelf-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(ContentNotFound, content_not_found_handler)
    app.add_exception_handler(ContentUnavailable, content_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(content_routes.router)
    app.include_router(search_routes.router)
    app.include_router(history_routes.router)
    app.include_router(guestbook_routes.router)
    app.include_router(analytics_routes.router)
    app.include_router(admin_routes.router)

    logger.info(
        "Serving content from %s/%s",
        settings.github_owner,
        settings.github_repo,
    )
    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
