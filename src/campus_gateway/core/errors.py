"""
Error Taxonomy and Global Error Handling

This module defines the typed failures of the routing/authentication layer
and the application-wide exception handlers that render them.

Design Goals
------------
- Never leak server names, logins or raw driver errors to clients
- One stable machine-readable code per failure kind
- Log full internal detail server-side for diagnostics
- Keep the exception types framework-agnostic; only the handlers know FastAPI
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("campus.errors")


# ---------------------------------------------------------------------
# Exception Taxonomy
# ---------------------------------------------------------------------

class GatewayError(Exception):
    """
    Base class for every typed failure raised by the core.

    `internal_detail` is for logs only. The public surface of an error is
    its `code`, `status_code` and `public_message`.
    """

    code: str = "gateway_error"
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, internal_detail: Optional[str] = None) -> None:
        self.internal_detail = internal_detail or self.public_message
        super().__init__(self.internal_detail)


class DirectoryUnavailable(GatewayError):
    """The primary server or the directory view could not be read."""

    code = "directory_unavailable"
    status_code = 503
    public_message = "Department directory is unavailable"


class TenantNotFound(GatewayError):
    """The requested department is not listed in the directory."""

    code = "tenant_not_found"
    status_code = 400
    public_message = "Invalid department selection"


class PoolConnectionFailed(GatewayError):
    """A connection pool could not be established for a registry key."""

    code = "pool_connection_failed"
    status_code = 503
    public_message = "Service unavailable for this department"

    def __init__(self, key: str, internal_detail: Optional[str] = None) -> None:
        self.key = key
        super().__init__(internal_detail)


class IdentityNotFound(GatewayError):
    """The identity lookup returned no usable row."""

    code = "invalid_credentials"
    status_code = 401
    public_message = "Invalid credentials"


class RestrictedIdentifierNotFound(IdentityNotFound):
    """The restricted-class existence check found no matching identifier."""


class InvalidServerIdentifier(GatewayError, ValueError):
    """A server identifier is empty or malformed."""

    code = "invalid_server_identifier"
    status_code = 400
    public_message = "Invalid server identifier"


class RestrictedWriteForbidden(GatewayError, PermissionError):
    """A write was attempted through a restricted-class connection pool."""

    code = "forbidden"
    status_code = 403
    public_message = "Operation not permitted for this account"


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def gateway_exception_handler(
    request: Request,
    exc: GatewayError,
) -> JSONResponse:
    """
    Render a typed gateway failure.

    The response carries only the error code and its generic message; the
    internal detail is logged.
    """
    logger.warning(
        "%s during %s %s: %s",
        type(exc).__name__,
        request.method,
        request.url.path,
        exc.internal_detail,
    )

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": exc.public_message,
    }

    return JSONResponse(status_code=exc.status_code, content=payload)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full stack trace and returns a generic 500 with no internal
    details.
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
