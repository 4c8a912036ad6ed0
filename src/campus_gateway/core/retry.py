"""
Reconnect Policy

A single policy object decides whether a failed pool acquisition is tried
again. The registry itself never retries; callers that want a second attempt
route the acquisition through a `RetryPolicy`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from .errors import PoolConnectionFailed

logger = logging.getLogger("campus.retry")

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry for connection-class failures.

    `max_attempts=1` means the operation runs exactly once.
    """

    max_attempts: int = 1
    delay_seconds: float = 0.0
    retry_on: Tuple[Type[BaseException], ...] = (PoolConnectionFailed,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1; got {self.max_attempts}")
        if self.delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0; got {self.delay_seconds}")

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Await `operation()`, calling it again on a retryable failure until
        attempts are exhausted. The last failure is re-raised.
        """
        attempt = 1
        while True:
            try:
                return await operation()
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    raise
                logger.info(
                    "Attempt %d/%d failed (%s); retrying",
                    attempt,
                    self.max_attempts,
                    type(exc).__name__,
                )
                attempt += 1
                if self.delay_seconds:
                    await asyncio.sleep(self.delay_seconds)


NO_RETRY = RetryPolicy()
