"""
Application Entry Point

This module defines the FastAPI application instance, wires the routing
layer (registry, directory, authentication, sessions), registers all routers
and configures global exception handling.

Design Goals
------------
- Explicit construction of every shared component (no module singletons)
- Components kept on `app.state` and injected through `api.dependencies`
- Every connection pool closed on shutdown
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI

from .config import Settings, settings as default_settings
from .core.errors import GatewayError, gateway_exception_handler, unhandled_exception_handler
from .core.retry import RetryPolicy
from .auth.service import AuthenticationService
from .db.profiles import CredentialResolver
from .db.registry import PoolRegistry
from .directory import DepartmentDirectory
from .sessions.store import SessionStore

from .api import (
    auth_routes,
    department_routes,
    diagnostics_routes,
    health_routes,
    tenant_routes,
)


logger = logging.getLogger("campus.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(
    config: Optional[Settings] = None,
    registry: Optional[PoolRegistry] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Parameters
    ----------
    config : Optional[Settings]
        Settings to build components from. Defaults to the environment.
    registry : Optional[PoolRegistry]
        Pre-built registry (tests pass one with a fake connector).
    session_store : Optional[SessionStore]
        Pre-built session store (tests pass one with a fixed clock).

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    cfg = config or default_settings

    app = FastAPI(
        title="campus-gateway",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Shared Components
    # --------------------------------------------------------------

    registry = registry or PoolRegistry(resolver=CredentialResolver(cfg))
    directory = DepartmentDirectory(registry, primary_server=cfg.primary_server)

    app.state.settings = cfg
    app.state.registry = registry
    app.state.directory = directory
    app.state.auth_service = AuthenticationService(
        directory,
        registry,
        retry_policy=RetryPolicy(
            max_attempts=cfg.auth_connect_attempts,
            delay_seconds=cfg.auth_retry_delay_seconds,
        ),
    )
    app.state.session_store = session_store or SessionStore(
        max_age=timedelta(seconds=cfg.session_max_age_seconds),
    )

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(GatewayError, gateway_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(department_routes.router)
    app.include_router(auth_routes.router)
    app.include_router(tenant_routes.router)
    app.include_router(diagnostics_routes.router)

    # --------------------------------------------------------------
    # Startup Validation Hook
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup_validation() -> None:
        """
        Fail-fast validation at application startup.
        """
        logger.info("Starting campus-gateway (primary server %s)", cfg.primary_server)

        # Touch critical secrets to force validation now (not at first use)
        _ = cfg.staff_secret.get_secret_value()
        _ = cfg.restricted_secret.get_secret_value()
        if not cfg.session_secret.get_secret_value():
            raise RuntimeError("CAMPUS_SESSION_SECRET must not be empty")

        logger.info("Configuration validated successfully")

    # --------------------------------------------------------------
    # Shutdown Hook
    # --------------------------------------------------------------

    @app.on_event("shutdown")
    async def _shutdown_cleanup() -> None:
        """
        Close every department connection pool.
        """
        logger.info("Shutting down campus-gateway")
        await registry.shutdown_all()
        app.state.session_store.clear_all()

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
