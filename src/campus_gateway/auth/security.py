"""
Session Verification & Tenant Binding

This module is responsible for:

1. Verifying the bearer session token sent by clients.
2. Reconstructing the principal from the server-side session store.
3. Handing tenant-scoped routes the connection pool bound to that principal.

Security Model
--------------
- The token names a session id only; role and department come from the
  store, never from the client.
- Expired sessions are treated exactly like missing ones.
- A principal's pool is always selected from its own `server_identifier`
  and credential class, never re-derived from the directory.
"""

from __future__ import annotations

import jwt
from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..api.dependencies import get_registry, get_session_store, get_settings
from ..config import Settings
from ..db.pool import ConnectionPool
from ..db.registry import PoolRegistry
from ..sessions.store import ClientSession, SessionStore
from .models import Principal
from .roles import Feature, has_feature
from .tokens import decode_session_token


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------
# Public Dependencies
# ---------------------------------------------------------------------

def get_client_session(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
    store: SessionStore = Depends(get_session_store),
    config: Settings = Depends(get_settings),
) -> ClientSession:
    """
    Resolve the caller's session from its bearer token.

    A request without a token gets an empty session. A token that fails
    verification is rejected with 401.
    """
    if creds is None:
        return store.session()

    try:
        session_id = decode_session_token(creds.credentials, config)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Session has expired.")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid or malformed session token.")

    return store.session(session_id)


def get_current_principal(
    session: ClientSession = Depends(get_client_session),
) -> Principal:
    """
    Return the authenticated principal, refreshing session activity.

    Raises
    ------
    HTTPException(401) when there is no live session.
    """
    if session.session_id is None:
        raise _unauthorized("Not authenticated.")

    if session.is_expired():
        session.clear()
        raise _unauthorized("Session has expired.")

    principal = session.current()
    if principal is None:
        raise _unauthorized("Not authenticated.")
    return principal


def require_staff(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """
    Restrict a route to staff principals.
    """
    if principal.is_restricted_class:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Operation not permitted for this account",
        )
    return principal


def require_feature(*features: Feature) -> Callable:
    """
    Create a dependency that admits principals whose permission role grants
    every feature in `features`.

    Example:
        @router.get("/grades")
        async def grades(user = Depends(require_feature(Feature.STUDENT_GRADES))):
            ...
    """

    def check_features(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:

        missing = [f.value for f in features if not has_feature(principal.permission_role, f)]

        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission for: {', '.join(missing)}",
            )

        return principal

    return check_features


async def get_tenant_pool(
    principal: Principal = Depends(get_current_principal),
    registry: PoolRegistry = Depends(get_registry),
) -> ConnectionPool:
    """
    Connection pool for the principal's own department server and class.

    Raises PoolConnectionFailed (rendered as 503) when the server is down.
    """
    return await registry.acquire_pool(principal.server_identifier, principal.caller_class)
