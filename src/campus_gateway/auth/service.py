"""
Multi-Tenant Authentication

Orchestrates a login against the department server that holds the user:

    RESOLVE_TENANT -> ACQUIRE_POOL -> RUN_IDENTITY_LOOKUP -> BUILD_PRINCIPAL

Every failure leaves this module as one of the typed errors in
`core.errors`; driver and network exceptions are logged here and never
propagated unwrapped.

Security Notes
--------------
- The staff secret must be supplied but is not verified remotely; the
  identity procedure only receives the login name. Identity is established by
  the department server recognizing the login under the staff credentials.
- The restricted (student) class supplies no secret at all. Existence of
  the identifier on the department server is the only check.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..core.errors import (
    IdentityNotFound,
    InvalidServerIdentifier,
    PoolConnectionFailed,
    RestrictedIdentifierNotFound,
    TenantNotFound,
)
from ..core.retry import NO_RETRY, RetryPolicy
from ..db.pool import ConnectionPool, is_connection_error
from ..db.profiles import CallerClass
from ..db.registry import PoolRegistry, pool_key
from ..db.results import ExistenceCheckResult, IdentityLookupResult, MalformedResultError
from ..directory import DepartmentDirectory
from ..tenants import Tenant
from .models import Principal

logger = logging.getLogger("campus.auth")


IDENTITY_PROCEDURE = "SP_LOGIN_INFO"

EXISTENCE_QUERY = "SELECT STUDENT_ID FROM STUDENT WHERE STUDENT_ID = :identifier"


class AuthenticationService:
    """
    Login entry points for the two caller classes.

    Holds no per-attempt state; repeated logins with the same inputs
    produce equal principals.
    """

    def __init__(
        self,
        directory: DepartmentDirectory,
        registry: PoolRegistry,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._directory = directory
        self._registry = registry
        self._retry = retry_policy or NO_RETRY

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def authenticate_staff(
        self,
        username: str,
        secret: str,
        tenant_name: str,
    ) -> Principal:
        """
        Authenticate a lecturer/administrator against their department.

        Raises
        ------
        DirectoryUnavailable, TenantNotFound, PoolConnectionFailed,
        IdentityNotFound
        """
        username = username.strip()
        if not username or not secret:
            raise IdentityNotFound("Missing username or secret")

        tenant = await self._resolve_tenant(tenant_name)
        pool = await self._acquire(tenant, CallerClass.STAFF)

        identity = await self._lookup_identity(pool, tenant, username, CallerClass.STAFF)

        principal = self._build_principal(identity, tenant, CallerClass.STAFF)
        logger.info(
            "Staff login for %s on %s (role %s)",
            principal.username,
            tenant.branch_name,
            principal.role_label,
        )
        return principal

    async def authenticate_restricted(
        self,
        identifier: str,
        tenant_name: str,
    ) -> Principal:
        """
        Authenticate a student by identifier alone.

        The identity lookup runs only after the existence check succeeds.

        Raises
        ------
        DirectoryUnavailable, TenantNotFound, PoolConnectionFailed,
        RestrictedIdentifierNotFound, IdentityNotFound
        """
        identifier = identifier.strip()
        if not identifier:
            raise RestrictedIdentifierNotFound("Missing identifier")

        tenant = await self._resolve_tenant(tenant_name)
        pool = await self._acquire(tenant, CallerClass.RESTRICTED)

        existence = await self._check_exists(pool, tenant, identifier)
        if not existence.exists:
            raise RestrictedIdentifierNotFound(
                f"Identifier {identifier!r} not found on {tenant.server_identifier}"
            )

        identity = await self._lookup_identity(pool, tenant, identifier, CallerClass.RESTRICTED)

        principal = self._build_principal(identity, tenant, CallerClass.RESTRICTED)
        logger.info("Student login for %s on %s", principal.username, tenant.branch_name)
        return principal

    async def authenticate(
        self,
        username: str,
        secret: Optional[str],
        tenant_name: str,
        restricted: bool = False,
    ) -> Principal:
        """Route to the staff or restricted flow."""
        if restricted:
            return await self.authenticate_restricted(username, tenant_name)
        return await self.authenticate_staff(username, secret or "", tenant_name)

    # ------------------------------------------------------------------
    # State machine steps
    # ------------------------------------------------------------------

    async def _resolve_tenant(self, tenant_name: str) -> Tenant:
        tenant = await self._directory.find_by_branch_name(tenant_name)
        if tenant is None:
            raise TenantNotFound(f"Department {tenant_name!r} not found in directory")
        return tenant

    async def _acquire(self, tenant: Tenant, caller_class: CallerClass) -> ConnectionPool:
        try:
            return await self._retry.run(
                lambda: self._registry.acquire_pool(tenant.server_identifier, caller_class)
            )
        except InvalidServerIdentifier as exc:
            # A malformed directory row is a server-side problem, not user input
            raise PoolConnectionFailed(
                pool_key(tenant.server_identifier, caller_class),
                exc.internal_detail,
            ) from exc

    async def _check_exists(
        self,
        pool: ConnectionPool,
        tenant: Tenant,
        identifier: str,
    ) -> ExistenceCheckResult:
        try:
            rows = await pool.fetch_all(EXISTENCE_QUERY, {"identifier": identifier})
        except Exception as exc:
            await self._remote_failure(
                exc, pool, tenant, CallerClass.RESTRICTED, "existence check"
            )
            raise RestrictedIdentifierNotFound(
                f"Existence check failed: {type(exc).__name__}"
            ) from exc

        return ExistenceCheckResult.from_rows(identifier, rows)

    async def _lookup_identity(
        self,
        pool: ConnectionPool,
        tenant: Tenant,
        login_name: str,
        caller_class: CallerClass,
    ) -> IdentityLookupResult:
        try:
            rows = await pool.call_procedure(
                IDENTITY_PROCEDURE,
                {"LoginName": login_name, "UserRole": caller_class.discriminator},
            )
        except Exception as exc:
            await self._remote_failure(exc, pool, tenant, caller_class, IDENTITY_PROCEDURE)
            raise IdentityNotFound(
                f"{IDENTITY_PROCEDURE} failed: {type(exc).__name__}"
            ) from exc

        try:
            identity = IdentityLookupResult.from_rows(rows)
        except MalformedResultError as exc:
            logger.error("%s on %s: %s", IDENTITY_PROCEDURE, tenant.server_identifier, exc)
            raise IdentityNotFound(str(exc)) from exc

        if identity is None:
            raise IdentityNotFound(
                f"{IDENTITY_PROCEDURE} returned no rows for {login_name!r}"
            )
        return identity

    async def _remote_failure(
        self,
        exc: Exception,
        pool: ConnectionPool,
        tenant: Tenant,
        caller_class: CallerClass,
        operation: str,
    ) -> None:
        """
        Log a failed remote call and evict the pool if the connection broke.

        Connection-level failures are re-raised as PoolConnectionFailed.
        """
        logger.error(
            "Error executing %s on %s: %s: %s",
            operation,
            tenant.server_identifier,
            type(exc).__name__,
            exc,
        )
        await self._registry.report_error(tenant.server_identifier, caller_class, exc, pool)

        if is_connection_error(exc):
            raise PoolConnectionFailed(
                pool_key(tenant.server_identifier, caller_class),
                f"{operation} lost its connection: {type(exc).__name__}",
            ) from exc

    @staticmethod
    def _build_principal(
        identity: IdentityLookupResult,
        tenant: Tenant,
        caller_class: CallerClass,
    ) -> Principal:
        return Principal(
            id=identity.username,
            username=identity.username,
            display_name=identity.full_name,
            role_label=identity.role_label or caller_class.discriminator,
            tenant=tenant,
            server_identifier=tenant.server_identifier,
            caller_class=caller_class,
        )
