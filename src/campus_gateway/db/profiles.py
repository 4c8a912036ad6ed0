"""
Credential Profiles

Maps a server identifier and a caller class onto the exact connection
parameters used to reach that server. Resolution is pure: no I/O and no
failure other than a malformed identifier.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..config import Settings, settings as default_settings
from ..core.errors import InvalidServerIdentifier


INSTANCE_SEPARATOR = "\\"


class CallerClass(str, Enum):
    """Credential class of a caller. Selected by role, never by data."""

    STAFF = "staff"
    RESTRICTED = "restricted"

    @property
    def discriminator(self) -> str:
        """Value passed as @UserRole to the identity-lookup procedure."""
        return "STUDENT" if self is CallerClass.RESTRICTED else "LECTURER"


class TransportOptions(BaseModel):
    encrypt: bool = False
    trust_server_certificate: bool = True
    instance_name: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class CredentialProfile(BaseModel):
    """
    Fully resolved connection parameters for one (server, caller class) pair.
    """

    server: str = Field(..., min_length=1)
    instance_name: Optional[str] = None
    login: str = Field(..., min_length=1)
    secret: SecretStr
    database: str = Field(..., min_length=1)
    caller_class: CallerClass
    transport: TransportOptions = Field(default_factory=TransportOptions)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def address(self) -> str:
        """Server address as SQL Server clients expect it (HOST\\INSTANCE)."""
        if self.instance_name:
            return f"{self.server}{INSTANCE_SEPARATOR}{self.instance_name}"
        return self.server

    def describe(self) -> str:
        """Secret-free one-line summary for logs and diagnostics."""
        return f"Server: {self.address}, User: {self.login}, Database: {self.database}"


def split_server_identifier(server_identifier: str) -> tuple[str, Optional[str]]:
    """
    Split `HOST\\INSTANCE` into its parts. Identifiers without a separator are
    returned verbatim with no instance.
    """
    if not server_identifier or not server_identifier.strip():
        raise InvalidServerIdentifier("Server identifier is empty")

    value = server_identifier.strip()
    if INSTANCE_SEPARATOR not in value:
        return value, None

    server, _, instance = value.partition(INSTANCE_SEPARATOR)
    if not server or not instance:
        raise InvalidServerIdentifier(f"Malformed server identifier '{value}'")
    return server, instance


class CredentialResolver:
    """
    Resolves credential profiles from configuration constants.
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        self._config = config or default_settings

    @property
    def primary_server(self) -> str:
        return self._config.primary_server

    def resolve(
        self,
        server_identifier: str,
        caller_class: CallerClass,
    ) -> CredentialProfile:
        server, instance = split_server_identifier(server_identifier)

        if caller_class is CallerClass.RESTRICTED:
            login = self._config.restricted_login
            secret = self._config.restricted_secret
        else:
            login = self._config.staff_login
            secret = self._config.staff_secret

        return CredentialProfile(
            server=server,
            instance_name=instance,
            login=login,
            secret=secret,
            database=self._config.database_name,
            caller_class=caller_class,
            transport=TransportOptions(
                encrypt=self._config.transport_encrypt,
                trust_server_certificate=self._config.transport_trust_server_certificate,
                instance_name=instance,
            ),
        )
