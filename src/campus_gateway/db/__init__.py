"""
Database Package

Credential profiles, per-server connection pools and the registry that
owns them.
"""

from .profiles import CallerClass, CredentialProfile, CredentialResolver, TransportOptions
from .pool import ConnectionPool, open_pool
from .registry import PoolRegistry, PoolState, pool_key
from .results import ExistenceCheckResult, IdentityLookupResult, MalformedResultError

__all__ = [
    "CallerClass",
    "CredentialProfile",
    "CredentialResolver",
    "TransportOptions",
    "ConnectionPool",
    "open_pool",
    "PoolRegistry",
    "PoolState",
    "pool_key",
    "ExistenceCheckResult",
    "IdentityLookupResult",
    "MalformedResultError",
]
