"""
Tenant-Scoped Endpoints

Every route here works against the connection pool bound to the caller's
session, obtained through `get_tenant_pool`. Feature modules (students,
classes, grades, tuition) follow the same pattern.
"""

from fastapi import APIRouter, Depends

from ..auth.models import Principal
from ..auth.roles import Feature
from ..auth.security import (
    get_current_principal,
    get_tenant_pool,
    require_feature,
    require_staff,
)
from ..core.errors import PoolConnectionFailed
from ..db.pool import ConnectionPool, is_connection_error
from ..db.registry import PoolRegistry, pool_key
from .dependencies import get_registry

router = APIRouter(prefix="/tenant", tags=["tenant"])


@router.get("/ping")
async def ping(
    principal: Principal = Depends(get_current_principal),
    pool: ConnectionPool = Depends(get_tenant_pool),
    registry: PoolRegistry = Depends(get_registry),
):
    try:
        rows = await pool.fetch_all("SELECT @@SERVERNAME AS server_name")
    except Exception as exc:
        await registry.report_error(
            principal.server_identifier, principal.caller_class, exc, pool
        )
        if is_connection_error(exc):
            raise PoolConnectionFailed(
                pool_key(principal.server_identifier, principal.caller_class),
                f"Ping failed: {type(exc).__name__}",
            ) from exc
        raise

    return {
        "department": principal.tenant.branch_name,
        "server_identifier": principal.server_identifier,
        "server_name": rows[0].get("server_name") if rows else None,
    }


@router.get("/connection", dependencies=[Depends(require_feature(Feature.SETTINGS))])
def connection(
    principal: Principal = Depends(require_staff),
    pool: ConnectionPool = Depends(get_tenant_pool),
):
    # Staff only; students never see which login their pool uses
    return {
        "department": principal.tenant.branch_name,
        "caller_class": pool.caller_class.value,
        "connection": pool.description,
    }
