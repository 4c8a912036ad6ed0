"""
Application-scoped dependencies.

The registry, directory, authentication service and session store are built
once by `create_app()` and kept on `app.state`. Routes receive them through
these functions, which tests replace via `app.dependency_overrides`.
"""

from fastapi import Request

from ..auth.service import AuthenticationService
from ..config import Settings
from ..db.registry import PoolRegistry
from ..directory import DepartmentDirectory
from ..sessions.store import SessionStore


def get_registry(request: Request) -> PoolRegistry:
    return request.app.state.registry


def get_directory(request: Request) -> DepartmentDirectory:
    return request.app.state.directory


def get_auth_service(request: Request) -> AuthenticationService:
    return request.app.state.auth_service


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
