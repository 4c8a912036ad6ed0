"""
Tenant (Department) Model

Each department of the university runs its own SQL Server instance. The
directory view on the primary server maps a department's display name
(`branch_name`) to that instance (`server_identifier`).

Rules
-----
- `branch_name` is the only externally-facing key.
- `server_identifier` is resolved fresh from the directory on each request
  and is never cached beyond one directory read.
- Both fields are stripped; blank values are rejected.
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InvalidTenantError(ValueError):
    """Raised when a directory row does not describe a usable tenant."""


class Tenant(BaseModel):
    """
    One department and the server that holds its data.
    """

    branch_name: str = Field(
        ...,
        min_length=1,
        description="Department display name, unique in the directory.",
    )

    server_identifier: str = Field(
        ...,
        min_length=1,
        description="Physical server, optionally HOST\\INSTANCE.",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("branch_name", "server_identifier", mode="before")
    @classmethod
    def strip_value(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise InvalidTenantError("Tenant fields must be non-empty strings")
        return v.strip()

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Tenant":
        """
        Build a tenant from a VIEW_FRAGMENT_LIST row.
        """
        return cls(
            branch_name=row.get("BRANCH_NAME"),
            server_identifier=row.get("SERVER_NAME"),
        )
