"""
Connection Diagnostics Endpoints

Operator endpoints for checking department connectivity and the state of
the connection pool registry.

Security
--------
All endpoints are protected by `verify_admin` which requires:
- `x-admin-key` header OR
- `key` query parameter
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Header, status

from ..config import Settings
from ..db.registry import PoolRegistry
from ..diagnostics import ConnectionDiagnostics, diagnose_connection, diagnose_departments
from ..directory import DepartmentDirectory
from .dependencies import get_directory, get_registry, get_settings
from .models import DiagnoseRequest

router = APIRouter(prefix="/diagnostics", tags=["diagnostics"])


# ---------------------------------------------------------------------
# Security Dependency
# ---------------------------------------------------------------------

async def verify_admin(
    x_admin_key: Optional[str] = Header(None, alias="x-admin-key"),
    key: Optional[str] = Query(None),
    config: Settings = Depends(get_settings),
):
    """
    Verify the request is from an admin using the configured API key.
    Checks header first, then query param.
    """
    expected_key = config.admin_api_key.get_secret_value() if config.admin_api_key else None

    if not expected_key:
        # If no key is configured, disable admin access securely
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access is not configured (CAMPUS_ADMIN_API_KEY missing)"
        )

    provided_key = x_admin_key or key

    if not provided_key or provided_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid or missing admin API key"
        )


# ---------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------

@router.get("/pools", dependencies=[Depends(verify_admin)])
def pool_status(registry: PoolRegistry = Depends(get_registry)):
    pools = registry.status()
    return {"pools": pools, "count": len(pools)}


@router.post(
    "/connection",
    response_model=ConnectionDiagnostics,
    dependencies=[Depends(verify_admin)],
)
async def diagnose(
    req: DiagnoseRequest,
    registry: PoolRegistry = Depends(get_registry),
):
    return await diagnose_connection(registry, req.server_name, req.caller_class)


@router.get("/departments", dependencies=[Depends(verify_admin)])
async def diagnose_all(
    directory: DepartmentDirectory = Depends(get_directory),
    registry: PoolRegistry = Depends(get_registry),
):
    report = await diagnose_departments(directory, registry)
    report["view_access"] = await directory.check_view_access()
    return report
