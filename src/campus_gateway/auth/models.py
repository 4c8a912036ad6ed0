"""
Authentication Models

This module defines the normalized identity record produced by a successful
login and read by every tenant-scoped operation afterwards.
"""

from pydantic import BaseModel, Field, ConfigDict, computed_field

from ..db.profiles import CallerClass
from ..tenants import Tenant
from .roles import PermissionRole, permission_role_for


class Principal(BaseModel):
    """
    Authenticated identity bound to exactly one department server.

    Switching departments requires a new login; a principal is never
    mutated after creation.
    """

    id: str = Field(
        ...,
        min_length=1,
        description="Stable identifier (username or student ID).",
    )

    username: str = Field(
        ...,
        min_length=1,
        description="Login name as returned by the identity lookup.",
    )

    display_name: str = Field(
        ...,
        description="Full name for display.",
    )

    role_label: str = Field(
        ...,
        min_length=1,
        description="Role string from the identity lookup, trusted verbatim.",
    )

    tenant: Tenant = Field(
        ...,
        description="Department resolved at login time.",
    )

    server_identifier: str = Field(
        ...,
        min_length=1,
        description="Server the principal is bound to for its lifetime.",
    )

    caller_class: CallerClass = Field(
        ...,
        description="Credential class used for every pool this principal touches.",
    )

    model_config = ConfigDict(
        frozen=True,                # Principals are immutable after login
        arbitrary_types_allowed=False,
        extra="ignore",             # Serialized principals carry computed fields
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_restricted_class(self) -> bool:
        return self.caller_class is CallerClass.RESTRICTED

    @computed_field  # type: ignore[prop-decorator]
    @property
    def permission_role(self) -> PermissionRole:
        # The credential class caps privileges; the label refines staff only
        if self.is_restricted_class:
            return PermissionRole.STUDENT
        return permission_role_for(self.role_label)
