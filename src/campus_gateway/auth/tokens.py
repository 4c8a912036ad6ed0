"""
Session Token Utilities

Clients receive a signed JWT whose only payload is the server-side session
id. The token is opaque to the client: it carries no role, department or
name, and the principal is always reconstructed from the session store.

Key characteristics:
- HS256 signature with a dedicated session secret
- Explicit issuer/audience claims
- `exp` mirrors the session's absolute lifetime; the session store remains
  the authority on expiry
"""

from __future__ import annotations

import jwt
from datetime import datetime
from typing import Any, Dict, Optional

from ..config import Settings, settings as default_settings


TOKEN_ISSUER = "campus-gateway"
TOKEN_AUDIENCE = "campus-gateway-client"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class SessionTokenError(RuntimeError):
    """Raised when a session token cannot be created or verified."""


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def create_session_token(
    session_id: str,
    issued_at: datetime,
    config: Optional[Settings] = None,
) -> str:
    """
    Sign a token naming `session_id`.

    Parameters
    ----------
    session_id : str
        Server-side session identifier.
    issued_at : datetime
        Login time of the session (timezone-aware).

    Returns
    -------
    str
        Encoded JWT for use as `Authorization: Bearer <token>`.
    """
    cfg = config or default_settings
    secret = cfg.session_secret.get_secret_value()
    if not secret:
        raise SessionTokenError("session_secret is not configured")

    iat = int(issued_at.timestamp())
    payload: Dict[str, Any] = {
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
        "iat": iat,
        "exp": iat + cfg.session_max_age_seconds,
        "sid": session_id,
    }

    try:
        return jwt.encode(payload, secret, algorithm=cfg.session_algo)
    except Exception as exc:
        raise SessionTokenError(
            f"Failed to generate session token: {type(exc).__name__}: {str(exc)}"
        ) from exc


def decode_session_token(token: str, config: Optional[Settings] = None) -> str:
    """
    Verify a session token and return its session id.

    Raises
    ------
    jwt.ExpiredSignatureError
        If the token's lifetime has passed.
    jwt.InvalidTokenError
        For any other signature, claim or format problem.
    """
    cfg = config or default_settings

    payload = jwt.decode(
        token,
        cfg.session_secret.get_secret_value(),
        algorithms=[cfg.session_algo],
        audience=TOKEN_AUDIENCE,
        issuer=TOKEN_ISSUER,
        options={"require": ["iss", "aud", "iat", "exp", "sid"]},
    )

    session_id = payload.get("sid")
    if not isinstance(session_id, str) or not session_id:
        raise jwt.InvalidTokenError("Token 'sid' claim must be a non-empty string")
    return session_id
