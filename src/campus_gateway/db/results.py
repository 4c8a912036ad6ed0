"""
Remote Result Contracts

Rows returned by remote procedures and queries are loosely shaped. They are
parsed into these models immediately after the call, so nothing downstream
ever handles an untyped row.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator


class MalformedResultError(ValueError):
    """Raised when a remote row does not match its contract."""


class IdentityLookupResult(BaseModel):
    """
    One row of SP_LOGIN_INFO: (USERNAME, FULL_NAME, RoleName | ROLE_NAME).

    The staff flow returns `RoleName`, the student flow `ROLE_NAME`; either
    is accepted.
    """

    username: str = Field(..., min_length=1, validation_alias=AliasChoices("USERNAME", "username"))
    full_name: str = Field(..., validation_alias=AliasChoices("FULL_NAME", "full_name"))
    role_label: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("RoleName", "ROLE_NAME", "role_label"),
    )

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("username", "full_name", "role_label", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        # CHAR columns come back space-padded
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @classmethod
    def from_rows(cls, rows: List[Dict[str, Any]]) -> Optional["IdentityLookupResult"]:
        """
        Parse the first row, or return None when the procedure returned none.

        Raises
        ------
        MalformedResultError
            If a row is present but does not carry a username and full name.
        """
        if not rows:
            return None
        try:
            return cls.model_validate(rows[0])
        except ValidationError as exc:
            raise MalformedResultError(
                f"Malformed identity lookup row ({exc.error_count()} error(s))"
            ) from exc


class ExistenceCheckResult(BaseModel):
    """Outcome of the restricted-class existence query."""

    identifier: str
    row_count: int = Field(..., ge=0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def exists(self) -> bool:
        return self.row_count > 0

    @classmethod
    def from_rows(cls, identifier: str, rows: List[Dict[str, Any]]) -> "ExistenceCheckResult":
        return cls(identifier=identifier, row_count=len(rows))
