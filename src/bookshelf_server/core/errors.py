"""
Error Taxonomy and Global Error Handling

This module defines the domain exceptions raised by the content, search and
analytics layers, together with the application-wide FastAPI exception
handlers that translate them into HTTP responses.

Propagation Policy
------------------
- Listing-level failures (the whole book list, a book folder) propagate to
  the caller as a typed error with a message.
- Item-level failures (one chapter, one comment count, one cover) are caught
  at the smallest possible scope and degrade to an empty/default value.
- Uncaught exceptions are logged with a full traceback and answered with a
  generic 500; internal details never reach the client.
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("bookshelf.errors")


# ---------------------------------------------------------------------
# Domain Exceptions
# ---------------------------------------------------------------------

class ContentError(RuntimeError):
    """Base error for content repository failures."""


class ContentUnavailable(ContentError):
    """Raised when a directory listing cannot be fetched."""


class ContentNotFound(ContentError):
    """Raised when a requested document does not exist in any known form."""


class ChapterNotFound(ContentNotFound):
    """Neither the flat-file nor the folder-style chapter resolved."""


class PostNotFound(ContentNotFound):
    """Neither the folder-style nor the flat-file dev post resolved."""


class PartialFetchFailure(ContentError):
    """
    A single item inside a batch failed.

    Always caught at the item scope; never surfaced to API clients.
    """


class CacheCorrupt(ValueError):
    """A persisted snapshot is unparseable. Treated as a cache miss."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def content_not_found_handler(
    request: Request,
    exc: ContentNotFound,
) -> JSONResponse:
    """
    Translate a missing chapter/post into a 404 response.
    """
    logger.info(
        "Content not found for %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )
    return JSONResponse(
        status_code=404,
        content={"error": "not_found", "detail": str(exc)},
    )


async def content_unavailable_handler(
    request: Request,
    exc: ContentUnavailable,
) -> JSONResponse:
    """
    Translate a failed listing into a 503 so the client can offer a retry.
    """
    logger.error(
        "Content repository unavailable for %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )
    return JSONResponse(
        status_code=503,
        content={"error": "content_unavailable", "detail": str(exc)},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
