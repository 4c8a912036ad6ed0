"""
Connection Pools

A `ConnectionPool` wraps one SQLAlchemy async engine bound to one
(server, caller class) pair. Engines are created by `open_pool`, which also
verifies the connection before handing the pool out.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.engine import URL
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from ..config import Settings, settings as default_settings
from ..core.errors import RestrictedWriteForbidden
from .profiles import CallerClass, CredentialProfile

logger = logging.getLogger("campus.pool")


IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_connection_error(exc: BaseException) -> bool:
    """
    True for failures of the connection itself (as opposed to a bad
    statement), after which the pool should be discarded.
    """
    if isinstance(exc, OperationalError):
        return True
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (ConnectionError, asyncio.TimeoutError))


def _odbc_quote(value: str) -> str:
    """Brace-quote an ODBC attribute value when it needs it."""
    if any(ch in value for ch in ";{}= "):
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_odbc_connect(
    profile: CredentialProfile,
    config: Optional[Settings] = None,
) -> str:
    """
    Build the ODBC connection string for a credential profile.
    """
    cfg = config or default_settings
    parts = {
        "DRIVER": "{" + cfg.odbc_driver + "}",
        "SERVER": _odbc_quote(profile.address),
        "DATABASE": _odbc_quote(profile.database),
        "UID": _odbc_quote(profile.login),
        "PWD": _odbc_quote(profile.secret.get_secret_value()),
        "Encrypt": "yes" if profile.transport.encrypt else "no",
        "TrustServerCertificate": "yes" if profile.transport.trust_server_certificate else "no",
        "Connection Timeout": str(cfg.connect_timeout_seconds),
    }
    return ";".join(f"{k}={v}" for k, v in parts.items())


class ConnectionPool:
    """
    Live pooled connection to one department server.

    Results come back as plain dictionaries keyed by column name; parsing
    them into typed results is the caller's job.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        caller_class: CallerClass,
        description: str,
    ) -> None:
        self._engine = engine
        self.caller_class = caller_class
        self.description = description
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def fetch_all(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Run a parameterized read and return every row."""
        async with self._engine.connect() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return [dict(row) for row in result.mappings().all()]

    async def call_procedure(
        self,
        name: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Execute a stored procedure with named parameters and return the rows
        of its first result set.
        """
        params = dict(params or {})
        for identifier in [name, *params]:
            if not IDENTIFIER_PATTERN.match(identifier):
                raise ValueError(f"Invalid SQL identifier '{identifier}'")

        assignments = ", ".join(f"@{key} = :{key}" for key in params)
        sql = f"EXEC {name} {assignments}".rstrip()
        return await self.fetch_all(sql, params)

    async def execute_write(
        self,
        sql: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> int:
        """
        Run a data-modifying statement in its own transaction.

        Raises
        ------
        RestrictedWriteForbidden
            If this pool was opened with the restricted credential class.
        """
        if self.caller_class is CallerClass.RESTRICTED:
            raise RestrictedWriteForbidden(
                f"Write refused on restricted pool ({self.description})"
            )

        async with self._engine.begin() as conn:
            result = await conn.execute(text(sql), dict(params or {}))
            return result.rowcount

    async def ping(self) -> None:
        """Round-trip a trivial query; raises whatever the driver raises."""
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._engine.dispose()


async def open_pool(
    profile: CredentialProfile,
    config: Optional[Settings] = None,
) -> ConnectionPool:
    """
    Create an engine for `profile` and verify it with a round-trip.

    The engine is disposed again if verification fails, so a failed open
    never leaves sockets behind.
    """
    cfg = config or default_settings

    url = URL.create(
        "mssql+aioodbc",
        query={"odbc_connect": build_odbc_connect(profile, cfg)},
    )
    engine = create_async_engine(
        url,
        pool_size=cfg.pool_size,
        max_overflow=cfg.pool_max_overflow,
        pool_pre_ping=True,
        pool_recycle=cfg.pool_recycle_seconds,
    )

    pool = ConnectionPool(engine, profile.caller_class, profile.describe())
    try:
        await pool.ping()
    except Exception:
        await pool.close()
        raise

    logger.info("Connection verified (%s)", pool.description)
    return pool
