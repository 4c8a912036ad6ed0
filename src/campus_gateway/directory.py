"""
Department Directory

Resolves department names to physical servers by reading VIEW_FRAGMENT_LIST
on the primary server. Every call reads the view again; tenant topology is
changed administratively and must be visible immediately.

Failure Policy
--------------
Any failure reaching the primary server or reading the view raises
`DirectoryUnavailable`. There is no fallback tenant list.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .core.errors import DirectoryUnavailable, PoolConnectionFailed
from .db.pool import ConnectionPool
from .db.profiles import CallerClass
from .db.registry import PoolRegistry
from .tenants import Tenant

logger = logging.getLogger("campus.directory")


DIRECTORY_VIEW = "VIEW_FRAGMENT_LIST"

LIST_QUERY = f"SELECT BRANCH_NAME, SERVER_NAME FROM {DIRECTORY_VIEW} ORDER BY BRANCH_NAME"

VIEW_EXISTS_QUERY = (
    "SELECT COUNT(*) AS view_count FROM INFORMATION_SCHEMA.VIEWS "
    "WHERE TABLE_NAME = :view_name"
)

VIEW_READ_QUERY = f"SELECT TOP 1 BRANCH_NAME, SERVER_NAME FROM {DIRECTORY_VIEW}"


class DepartmentDirectory:
    """
    Reads the department directory through the primary server's pool.

    The primary pool is acquired via the registry with the staff credential
    class, like any other pool.
    """

    def __init__(
        self,
        registry: PoolRegistry,
        primary_server: Optional[str] = None,
    ) -> None:
        self._registry = registry
        self._primary_server = primary_server or registry.resolver.primary_server

    @property
    def primary_server(self) -> str:
        return self._primary_server

    async def _primary_pool(self) -> ConnectionPool:
        try:
            return await self._registry.acquire_pool(self._primary_server, CallerClass.STAFF)
        except PoolConnectionFailed as exc:
            raise DirectoryUnavailable(
                f"Primary server {self._primary_server} unreachable: {exc.internal_detail}"
            ) from exc

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def list_tenants(self) -> List[Tenant]:
        """
        Return every department, sorted ascending by branch name.

        Raises
        ------
        DirectoryUnavailable
        """
        pool = await self._primary_pool()

        try:
            rows = await pool.fetch_all(LIST_QUERY)
            tenants = [Tenant.from_row(row) for row in rows]
        except Exception as exc:
            await self._registry.report_error(self._primary_server, CallerClass.STAFF, exc, pool)
            logger.error(
                "Error reading %s on %s: %s: %s",
                DIRECTORY_VIEW,
                self._primary_server,
                type(exc).__name__,
                exc,
            )
            raise DirectoryUnavailable(
                f"Cannot read {DIRECTORY_VIEW}: {type(exc).__name__}: {exc}"
            ) from exc

        # Collation of the server's ORDER BY is not part of the contract
        return sorted(tenants, key=lambda t: t.branch_name)

    async def find_by_branch_name(self, branch_name: str) -> Optional[Tenant]:
        name = branch_name.strip()
        for tenant in await self.list_tenants():
            if tenant.branch_name == name:
                return tenant
        return None

    async def find_by_server_name(self, server_identifier: str) -> Optional[Tenant]:
        for tenant in await self.list_tenants():
            if tenant.server_identifier == server_identifier:
                return tenant
        return None

    async def validate_department(self, branch_name: str, server_identifier: str) -> bool:
        """True when the directory maps `branch_name` to `server_identifier`."""
        tenant = await self.find_by_branch_name(branch_name)
        return tenant is not None and tenant.server_identifier == server_identifier

    async def list_for_dropdown(self) -> List[Dict[str, str]]:
        """Tenant options shaped for selection widgets."""
        return [
            {
                "value": t.branch_name,
                "label": t.branch_name,
                "server_name": t.server_identifier,
            }
            for t in await self.list_tenants()
        ]

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def check_view_access(self) -> Dict[str, object]:
        """
        Report whether the directory view exists and can be read.

        Unlike the lookups this never raises; the outcome is in the result.
        """
        exists = False
        pool: Optional[ConnectionPool] = None
        try:
            pool = await self._primary_pool()
            rows = await pool.fetch_all(VIEW_EXISTS_QUERY, {"view_name": DIRECTORY_VIEW})
            exists = bool(rows) and int(rows[0].get("view_count") or 0) > 0
            if not exists:
                return {
                    "exists": False,
                    "accessible": False,
                    "error": f"{DIRECTORY_VIEW} does not exist",
                }
            await pool.fetch_all(VIEW_READ_QUERY)
        except DirectoryUnavailable:
            return {"exists": False, "accessible": False, "error": "Primary server unreachable"}
        except Exception as exc:
            await self._registry.report_error(self._primary_server, CallerClass.STAFF, exc, pool)
            logger.error("Error testing %s access: %s", DIRECTORY_VIEW, exc)
            return {"exists": exists, "accessible": False, "error": type(exc).__name__}

        return {"exists": True, "accessible": True, "error": None}
