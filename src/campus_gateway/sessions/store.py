"""
Session Store

Server-side storage of authenticated principals.

Clients hold only an opaque signed token naming a session id (see
`auth.tokens`); the principal itself never leaves the server, so a client
cannot alter its own role or department.

Design choices
--------------
- In-memory only (no persistence across process restarts).
- Thread-safe access using a re-entrant lock.
- Each record keeps its login time and last-activity time. Reading a
  session refreshes last activity.
- Expiry is absolute: a session expires `max_age` after login, however
  active it has been. Expiry is not enforced by reads; callers check
  `is_expired()` and treat an expired session as absent.
- Every new session sweeps out expired ones, so abandoned sessions do not
  accumulate.
- Instances are created explicitly (the application keeps one on its
  state); tests build their own with a controllable clock.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from threading import RLock
from typing import Callable, Dict, Optional

from ..auth.models import Principal

logger = logging.getLogger("campus.sessions")


DEFAULT_MAX_AGE = timedelta(hours=8)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionRecord:
    session_id: str
    principal: Principal
    login_time: datetime
    last_activity: datetime


class SessionStore:
    """
    In-memory store mapping session ids to session records.
    """

    def __init__(
        self,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Optional[Clock] = None,
    ) -> None:
        """
        Parameters
        ----------
        max_age : timedelta
            Lifetime of a session measured from login.
        clock : Optional[Callable[[], datetime]]
            Source of the current time. Defaults to UTC wall clock.
        """
        self._records: Dict[str, SessionRecord] = {}
        self._lock = RLock()
        self._max_age = max_age
        self._clock: Clock = clock or utc_now

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def create(self, principal: Principal) -> SessionRecord:
        """
        Start a new session for `principal` and return its record.
        """
        now = self._clock()
        record = SessionRecord(
            session_id=secrets.token_urlsafe(32),
            principal=principal,
            login_time=now,
            last_activity=now,
        )
        with self._lock:
            purged = self._purge_locked(now)
            self._records[record.session_id] = record
        if purged:
            logger.debug("Purged %d expired session(s)", purged)
        logger.debug("Session created for %s", principal.username)
        return record

    def get(self, session_id: str) -> Optional[SessionRecord]:
        """Return the record without touching it."""
        with self._lock:
            return self._records.get(session_id)

    def touch(self, session_id: str) -> Optional[SessionRecord]:
        """
        Refresh last activity to now and return the updated record.
        """
        with self._lock:
            record = self._records.get(session_id)
            if record is None:
                return None
            record = replace(record, last_activity=self._clock())
            self._records[session_id] = record
            return record

    def delete(self, session_id: str) -> bool:
        with self._lock:
            return self._records.pop(session_id, None) is not None

    def is_expired(self, session_id: str) -> bool:
        """
        True when the session is unknown or `max_age` has passed since login.
        """
        record = self.get(session_id)
        if record is None:
            return True
        return self._clock() - record.login_time >= self._max_age

    # ------------------------------------------------------------------
    # Utility operations
    # ------------------------------------------------------------------

    def purge_expired(self) -> int:
        """
        Drop every expired session. Returns the number removed.
        """
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: datetime) -> int:
        expired = [
            sid
            for sid, record in self._records.items()
            if now - record.login_time >= self._max_age
        ]
        for sid in expired:
            del self._records[sid]
        return len(expired)

    def clear_all(self) -> None:
        with self._lock:
            self._records.clear()

    def session(self, session_id: Optional[str] = None) -> "ClientSession":
        """Per-client view of this store."""
        return ClientSession(self, session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class ClientSession:
    """
    The session of one client: save / current / clear / is_expired.
    """

    def __init__(self, store: SessionStore, session_id: Optional[str] = None) -> None:
        self._store = store
        self.session_id = session_id

    def save(self, principal: Principal) -> SessionRecord:
        """
        Persist `principal` as this client's session, replacing any previous
        one. A new session id is always issued.
        """
        if self.session_id is not None:
            self._store.delete(self.session_id)
        record = self._store.create(principal)
        self.session_id = record.session_id
        return record

    def current(self) -> Optional[Principal]:
        """
        Return the stored principal and refresh last activity.
        """
        if self.session_id is None:
            return None
        record = self._store.touch(self.session_id)
        return record.principal if record is not None else None

    def record(self) -> Optional[SessionRecord]:
        if self.session_id is None:
            return None
        return self._store.get(self.session_id)

    def clear(self) -> None:
        if self.session_id is not None:
            self._store.delete(self.session_id)
        self.session_id = None

    def is_expired(self) -> bool:
        if self.session_id is None:
            return True
        return self._store.is_expired(self.session_id)
