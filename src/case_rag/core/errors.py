"""
Global Error Handling

This module defines application-wide exception handlers that translate the
domain taxonomy in `core.exceptions` into HTTP responses.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Report dependency outages as a distinct "temporarily unavailable" condition
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .exceptions import CaseRagError, UnavailableError

logger = logging.getLogger("rag.errors")

RETRY_AFTER_SECONDS = 30


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def case_rag_exception_handler(
    request: Request,
    exc: CaseRagError,
) -> JSONResponse:
    """
    Translate a domain error into its HTTP status and payload.

    Forbidden/NotFound/Conflict/Validation are deterministic request-level
    failures and their messages are safe to return. Unavailable gets a
    `Retry-After` header so clients can tell "try again" from "your request
    was invalid".

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : CaseRagError
        The raised domain error.

    Returns
    -------
    JSONResponse
        A JSON response with `error` (machine code) and `detail`.
    """
    headers: Dict[str, str] = {}

    if isinstance(exc, UnavailableError):
        logger.error(
            "Dependency unavailable during request: %s %s (%s)",
            request.method,
            request.url.path,
            exc.message,
        )
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS)
        detail = "Service temporarily unavailable, please retry later"
    else:
        logger.warning(
            "Request failed with %s: %s %s (%s)",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
        )
        detail = exc.message

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": detail,
    }

    return JSONResponse(
        status_code=exc.status_code,
        content=payload,
        headers=headers or None,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full stack trace and returns a generic 500 with no internal
    details. Unmapped store errors end up here.
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


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the domain handler and the catch-all on an application.
    """
    app.add_exception_handler(CaseRagError, case_rag_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
