"""In-memory server-side session store with sliding expiration."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional


@dataclass
class _SessionRecord:
    user_id: str
    expires_at: datetime


class SessionManager:
    """Generate, validate, and revoke sign-in sessions.

    Tokens are opaque; the user they belong to is only ever known server
    side. Resolving a live token extends its lifetime by ``ttl``.
    """

    def __init__(
        self,
        *,
        ttl: timedelta = timedelta(hours=8),
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("Session TTL must be positive")
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: Dict[str, _SessionRecord] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def cookie_max_age(self) -> int:
        return int(self._ttl.total_seconds())

    def create(self, user_id: str) -> str:
        token = secrets.token_urlsafe(32)
        record = _SessionRecord(user_id=user_id, expires_at=self._clock() + self._ttl)
        with self._lock:
            self._sessions[token] = record
        return token

    def resolve(self, token: str) -> Optional[str]:
        if not token:
            return None
        now = self._clock()
        with self._lock:
            record = self._sessions.get(token)
            if record is None:
                return None
            if record.expires_at <= now:
                self._sessions.pop(token, None)
                return None
            record.expires_at = now + self._ttl
            return record.user_id

    def expires_at(self, token: str) -> Optional[datetime]:
        with self._lock:
            record = self._sessions.get(token)
            return record.expires_at if record is not None else None

    def destroy(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def destroy_for(self, user_id: str) -> int:
        """Revoke every session belonging to ``user_id``."""

        with self._lock:
            doomed = [token for token, record in self._sessions.items() if record.user_id == user_id]
            for token in doomed:
                del self._sessions[token]
        return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [token for token, record in self._sessions.items() if record.expires_at <= now]
            for token in doomed:
                del self._sessions[token]
        return len(doomed)


__all__ = ["SessionManager"]
