"""In-memory session store mapping opaque tokens to user ids."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

DEFAULT_SESSION_TTL = timedelta(days=7)


@dataclass(frozen=True)
class _SessionRecord:
    user_id: int
    expires_at: datetime


class SessionManager:
    """Generate, resolve, and revoke login sessions.

    Expiry is fixed when the session is created; resolving a token never
    extends it.
    """

    def __init__(
        self,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, _SessionRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def cookie_max_age(self) -> int:
        return int(self._ttl.total_seconds())

    def count(self) -> int:
        """Number of records currently held, expired or not."""

        with self._lock:
            return len(self._sessions)

    def create(self, user_id: int) -> str:
        token = secrets.token_urlsafe(32)
        now = self._now()
        record = _SessionRecord(user_id=user_id, expires_at=now + self._ttl)
        with self._lock:
            self._purge_expired(now)
            self._sessions[token] = record
        return token

    def resolve(self, token: str) -> Optional[int]:
        now = self._now()
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            if record.expires_at <= now:
                self._sessions.pop(token, None)
                return None
            return record.user_id

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def _purge_expired(self, now: datetime) -> None:
        # Caller holds self._lock.
        expired = [token for token, record in self._sessions.items() if record.expires_at <= now]
        for token in expired:
            del self._sessions[token]

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(timezone.utc)


__all__ = ["DEFAULT_SESSION_TTL", "SessionManager"]
