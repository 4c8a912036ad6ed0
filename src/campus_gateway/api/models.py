"""
API Models

Pydantic request/response models for the HTTP surface.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ConfigDict, model_validator

from ..auth.models import Principal
from ..auth.roles import Feature, PermissionRole
from ..db.profiles import CallerClass


# ---------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------

class DepartmentOption(BaseModel):
    value: str
    label: str
    server_name: str


class DepartmentListResponse(BaseModel):
    departments: List[DepartmentOption]
    count: int = Field(..., ge=0)


# ---------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------

class LoginRequest(BaseModel):
    """
    Login payload. Students log in with their ID only; staff must also
    send a password.
    """
    username: str = Field(..., min_length=1)
    password: Optional[str] = None
    department: str = Field(..., min_length=1)
    is_student_login: bool = False

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def require_staff_password(self) -> "LoginRequest":
        if not self.is_student_login and not self.password:
            raise ValueError("Password is required for staff login")
        return self


class LoginResponse(BaseModel):
    token: str
    token_type: Literal["bearer"] = "bearer"
    expires_at: datetime
    login_type: Literal["staff", "student"]
    user: Principal


class SessionResponse(BaseModel):
    user: Principal
    login_time: datetime
    last_activity: datetime
    expires_at: datetime


class LogoutResponse(BaseModel):
    status: Literal["ok"] = "ok"


class PermissionsResponse(BaseModel):
    role_label: str
    permission_role: PermissionRole
    features: List[Feature]


# ---------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------

class DiagnoseRequest(BaseModel):
    server_name: str = Field(..., min_length=1)
    caller_class: CallerClass = CallerClass.STAFF

    model_config = ConfigDict(extra="forbid")
