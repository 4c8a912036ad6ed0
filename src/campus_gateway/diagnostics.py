"""
Connection Diagnostics

Operator-facing checks of department connectivity. Results describe the
connection without its secret and attach troubleshooting hints keyed on the
kind of failure.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .core.errors import InvalidServerIdentifier, PoolConnectionFailed
from .db.profiles import INSTANCE_SEPARATOR, CallerClass
from .db.registry import PoolRegistry, pool_key
from .directory import DepartmentDirectory

logger = logging.getLogger("campus.diagnostics")


class ConnectionDiagnostics(BaseModel):
    server_identifier: str
    caller_class: CallerClass
    connection_summary: str = ""
    can_connect: bool = False
    error: Optional[str] = None
    suggestions: List[str] = Field(default_factory=list)


class DepartmentDiagnostics(BaseModel):
    department: str
    server_identifier: str
    staff: ConnectionDiagnostics
    restricted: ConnectionDiagnostics


def suggestions_for(error: str, server_identifier: str, login: str) -> List[str]:
    """
    Troubleshooting hints for a connection error message.
    """
    hints: List[str] = []
    lowered = error.lower()

    if "timeout" in lowered or "hyt00" in lowered:
        hints.append("Check if SQL Server is running and accepting connections")
        hints.append("Verify SQL Server Browser service is running (for named instances)")
        hints.append("Check firewall settings for SQL Server ports")
        hints.append("Ensure TCP/IP protocol is enabled in SQL Server Configuration Manager")

    if "login failed" in lowered or "28000" in lowered:
        hints.append(f"Check if user '{login}' exists and has correct password")
        hints.append("Verify SQL Server Authentication is enabled (not just Windows Auth)")
        hints.append("Check user permissions and database access")

    if "server was not found" in lowered or "not accessible" in lowered:
        hints.append("Verify server name and instance name are correct")
        hints.append("Check if SQL Server Browser service is running")
        hints.append("Try using IP address instead of server name")

    if INSTANCE_SEPARATOR in server_identifier:
        hints.append("For named instances, ensure SQL Server Browser service is running")
        hints.append("Check if the instance name is correct")

    return hints


async def diagnose_connection(
    registry: PoolRegistry,
    server_identifier: str,
    caller_class: CallerClass,
) -> ConnectionDiagnostics:
    """
    Try to reach `server_identifier` with the given credential class.

    Never raises for connection problems; they are reported in the result.
    """
    result = ConnectionDiagnostics(
        server_identifier=server_identifier,
        caller_class=caller_class,
    )

    try:
        profile = registry.resolver.resolve(server_identifier, caller_class)
    except InvalidServerIdentifier as exc:
        result.error = exc.public_message
        return result

    result.connection_summary = profile.describe()
    key = pool_key(server_identifier, caller_class)

    pool = None
    try:
        pool = await registry.acquire(key, profile)
        await pool.ping()
    except PoolConnectionFailed as exc:
        result.error = exc.internal_detail
    except Exception as exc:
        await registry.report_error(server_identifier, caller_class, exc, pool)
        result.error = f"{type(exc).__name__}: {exc}"
    else:
        result.can_connect = True
        return result

    logger.warning("Diagnostics for %s failed: %s", key, result.error)
    result.suggestions = suggestions_for(result.error or "", server_identifier, profile.login)
    return result


async def diagnose_departments(
    directory: DepartmentDirectory,
    registry: PoolRegistry,
) -> Dict[str, object]:
    """
    Diagnose both credential classes for every department in the directory.

    Raises DirectoryUnavailable when the directory itself cannot be read.
    """
    results: List[DepartmentDiagnostics] = []
    for tenant in await directory.list_tenants():
        results.append(
            DepartmentDiagnostics(
                department=tenant.branch_name,
                server_identifier=tenant.server_identifier,
                staff=await diagnose_connection(registry, tenant.server_identifier, CallerClass.STAFF),
                restricted=await diagnose_connection(
                    registry, tenant.server_identifier, CallerClass.RESTRICTED
                ),
            )
        )

    return {
        "results": results,
        "summary": {
            "total_departments": len(results),
            "staff_connections_working": sum(r.staff.can_connect for r in results),
            "restricted_connections_working": sum(r.restricted.can_connect for r in results),
        },
    }
