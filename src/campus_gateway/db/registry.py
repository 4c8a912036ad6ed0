"""
Connection Pool Registry

Keyed registry of live connection pools, one per (server identifier,
caller class) pair.

Concurrency
-----------
- All callers share one event loop; the registry is only mutated between
  awaits, so each insert/evict of a key is atomic.
- A key that is being connected holds an in-flight `asyncio.Task`. Later
  callers for the same key await that task instead of opening a duplicate
  connection. Unrelated keys connect fully in parallel.
- Waiters await the task through `asyncio.shield`, so a cancelled waiter
  never aborts the shared connect.

Failure Policy
--------------
- A failed connect removes the key before the failure reaches any waiter;
  the next `acquire` starts a fresh attempt.
- The registry never retries on its own. See `core.retry.RetryPolicy`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from ..core.errors import PoolConnectionFailed
from .pool import ConnectionPool, is_connection_error, open_pool
from .profiles import CallerClass, CredentialProfile, CredentialResolver

logger = logging.getLogger("campus.registry")


Connector = Callable[[CredentialProfile], Awaitable[ConnectionPool]]


class PoolState(str, Enum):
    CONNECTING = "connecting"
    READY = "ready"
    BROKEN = "broken"


@dataclass
class PoolEntry:
    key: str
    state: PoolState
    pool: Optional[ConnectionPool] = None
    task: Optional["asyncio.Task[ConnectionPool]"] = None


def pool_key(server_identifier: str, caller_class: CallerClass) -> str:
    """Registry key for a server and credential class."""
    return f"{server_identifier}:{caller_class.value}"


def _consume_task_result(task: "asyncio.Task[ConnectionPool]") -> None:
    # Every waiter may have been cancelled; retrieve the exception here so it
    # is never reported as unretrieved.
    if not task.cancelled():
        task.exception()


class PoolRegistry:
    """
    Owns the lifecycle of every connection pool in the process.

    Construct one per application (or per test); nothing here is global.
    """

    def __init__(
        self,
        resolver: Optional[CredentialResolver] = None,
        connector: Optional[Connector] = None,
    ) -> None:
        self._resolver = resolver or CredentialResolver()
        self._connector: Connector = connector or open_pool
        self._entries: Dict[str, PoolEntry] = {}

    @property
    def resolver(self) -> CredentialResolver:
        return self._resolver

    # ------------------------------------------------------------------
    # Acquisition
    # ------------------------------------------------------------------

    async def acquire(self, key: str, profile: CredentialProfile) -> ConnectionPool:
        """
        Return the ready pool for `key`, joining or starting a connect.

        Raises
        ------
        PoolConnectionFailed
            If the connect attempt for `key` fails.
        """
        entry = self._entries.get(key)

        if entry is not None:
            if entry.state is PoolState.READY and entry.pool is not None and not entry.pool.closed:
                return entry.pool

            if entry.state is PoolState.CONNECTING and entry.task is not None:
                logger.debug("Waiting for in-flight connect of %s", key)
                return await asyncio.shield(entry.task)

            # Stale entry (closed out-of-band or broken)
            self._entries.pop(key, None)

        task = asyncio.get_running_loop().create_task(self._open(key, profile))
        task.add_done_callback(_consume_task_result)
        self._entries[key] = PoolEntry(key=key, state=PoolState.CONNECTING, task=task)

        return await asyncio.shield(task)

    async def acquire_pool(
        self,
        server_identifier: str,
        caller_class: CallerClass,
    ) -> ConnectionPool:
        """
        Resolve the credential profile for a server and class, then acquire.

        This is the entry point for tenant-scoped data operations.
        """
        profile = self._resolver.resolve(server_identifier, caller_class)
        return await self.acquire(pool_key(server_identifier, caller_class), profile)

    async def _open(self, key: str, profile: CredentialProfile) -> ConnectionPool:
        me = asyncio.current_task()
        logger.info("Connecting %s (%s)", key, profile.describe())

        try:
            pool = await self._connector(profile)
        except Exception as exc:
            entry = self._entries.get(key)
            if entry is not None and entry.task is me:
                del self._entries[key]
            logger.error("Failed to connect %s: %s: %s", key, type(exc).__name__, exc)
            raise PoolConnectionFailed(key, f"{type(exc).__name__}: {exc}") from exc

        entry = self._entries.get(key)
        if entry is None or entry.task is not me:
            # Evicted or shut down while connecting
            await pool.close()
            raise PoolConnectionFailed(key, "Pool was evicted while connecting")

        entry.pool = pool
        entry.state = PoolState.READY
        entry.task = None
        logger.info("Connected %s", key)
        return pool

    # ------------------------------------------------------------------
    # Eviction & shutdown
    # ------------------------------------------------------------------

    async def mark_broken(self, key: str, pool: Optional[ConnectionPool]) -> None:
        """
        Record a connection-level error seen by a caller of `pool` and evict
        it so the next acquire reconnects.

        Only the pool that failed is evicted. A report about a pool that was
        already replaced (or one still connecting) leaves the entry alone.
        """
        entry = self._entries.get(key)
        if entry is None or pool is None or entry.pool is not pool:
            logger.debug("Ignoring stale failure report for %s", key)
            return
        entry.state = PoolState.BROKEN
        logger.warning("Pool %s marked broken", key)
        await self.evict(key)

    async def report_error(
        self,
        server_identifier: str,
        caller_class: CallerClass,
        exc: BaseException,
        pool: Optional[ConnectionPool],
    ) -> None:
        """
        Evict `pool` after a failed remote call if the failure was at the
        connection level. Statement-level errors leave the pool alone.
        """
        if is_connection_error(exc):
            await self.mark_broken(pool_key(server_identifier, caller_class), pool)

    async def evict(self, key: str) -> bool:
        """
        Close and remove one entry. Returns False if the key was absent.
        """
        entry = self._entries.pop(key, None)
        if entry is None:
            return False

        if entry.pool is not None:
            await self._close_quietly(key, entry.pool)
        logger.info("Evicted %s", key)
        return True

    async def shutdown_all(self) -> None:
        """
        Close every pool, including ones still connecting.
        """
        entries = list(self._entries.values())
        self._entries.clear()

        pending = [e.task for e in entries if e.task is not None and not e.task.done()]
        await asyncio.gather(
            *(self._close_quietly(e.key, e.pool) for e in entries if e.pool is not None)
        )
        if pending:
            # In-flight connects see they were dropped and close their own pool
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info("Closed %d connection pool(s)", len(entries))

    async def _close_quietly(self, key: str, pool: ConnectionPool) -> None:
        try:
            await pool.close()
        except Exception as exc:
            logger.error("Error closing connection %s: %s", key, exc)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def test_connection(self, key: str, profile: CredentialProfile) -> bool:
        """
        Acquire `key` and round-trip a trivial query.

        A failed round-trip on an existing pool marks it broken.
        """
        try:
            pool = await self.acquire(key, profile)
        except PoolConnectionFailed:
            return False

        try:
            await pool.ping()
        except Exception as exc:
            logger.error("Connection test failed for %s: %s", key, exc)
            await self.mark_broken(key, pool)
            return False
        return True

    def status(self) -> Dict[str, str]:
        """Map of registry key to pool state."""
        return {key: entry.state.value for key, entry in self._entries.items()}

    def keys(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
