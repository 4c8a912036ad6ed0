import logging

from fastapi import APIRouter, Depends

from ..auth.models import Principal
from ..auth.roles import allowed_features
from ..auth.security import get_client_session, get_current_principal
from ..auth.service import AuthenticationService
from ..auth.tokens import create_session_token
from ..config import Settings
from ..sessions.store import ClientSession, SessionStore
from .dependencies import get_auth_service, get_session_store, get_settings
from .models import (
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    PermissionsResponse,
    SessionResponse,
)

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger("campus.auth")


@router.post("/login", response_model=LoginResponse)
async def login(
    req: LoginRequest,
    auth: AuthenticationService = Depends(get_auth_service),
    store: SessionStore = Depends(get_session_store),
    config: Settings = Depends(get_settings),
):
    # Typed failures propagate to the GatewayError handler
    principal = await auth.authenticate(
        req.username,
        req.password,
        req.department,
        restricted=req.is_student_login,
    )

    record = store.session().save(principal)
    token = create_session_token(record.session_id, record.login_time, config)

    return LoginResponse(
        token=token,
        expires_at=record.login_time + store.max_age,
        login_type="student" if req.is_student_login else "staff",
        user=principal,
    )


@router.get("/me", response_model=SessionResponse)
def me(
    principal: Principal = Depends(get_current_principal),
    session: ClientSession = Depends(get_client_session),
    store: SessionStore = Depends(get_session_store),
):
    record = session.record()
    return SessionResponse(
        user=principal,
        login_time=record.login_time,
        last_activity=record.last_activity,
        expires_at=record.login_time + store.max_age,
    )


@router.post("/logout", response_model=LogoutResponse)
def logout(session: ClientSession = Depends(get_client_session)):
    if session.session_id is not None:
        logger.info("Session closed")
    session.clear()
    return LogoutResponse()


@router.get("/permissions", response_model=PermissionsResponse)
def permissions(principal: Principal = Depends(get_current_principal)):
    return PermissionsResponse(
        role_label=principal.role_label,
        permission_role=principal.permission_role,
        features=allowed_features(principal.permission_role),
    )
