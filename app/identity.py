"""Resolve the acting user from server-held session state."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from .database import Database
from .models import Identity, User
from .sessions import SessionManager

logger = logging.getLogger("jobtracker.identity")

DEFAULT_SESSION_COOKIE = "jat_session"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a request's session.

    ``token`` is set whenever the request presented a session cookie, so the
    caller can re-issue it (live session) or clear it (stale session).
    """

    identity: Optional[Identity]
    token: Optional[str]
    user: Optional[User] = None

    @property
    def authenticated(self) -> bool:
        return self.identity is not None


class IdentityGate:
    """Derive the current identity exclusively from the session cookie.

    Request bodies, query strings and headers naming a user are never
    consulted. Any failure while resolving is reported as unauthenticated.
    """

    def __init__(
        self,
        sessions: SessionManager,
        database: Database,
        *,
        cookie_name: str = DEFAULT_SESSION_COOKIE,
    ) -> None:
        self._sessions = sessions
        self._database = database
        self._cookie_name = cookie_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def resolve(self, cookies: Optional[Mapping[str, str]]) -> Resolution:
        token = cookies.get(self._cookie_name) if cookies else None
        if not token:
            return Resolution(identity=None, token=None)

        try:
            user_id = self._sessions.resolve(token)
            if user_id is None:
                return Resolution(identity=None, token=token)
            user = self._database.get_user(user_id)
        except Exception:
            logger.exception("Failed to resolve session; treating request as unauthenticated")
            return Resolution(identity=None, token=token)

        if user is None:
            self._sessions.destroy(token)
            return Resolution(identity=None, token=token)

        return Resolution(identity=Identity(user.id), token=token, user=user)

    def sign_in(self, user: User) -> str:
        self._sessions.purge_expired()
        return self._sessions.create(user.id)

    def sign_out(self, cookies: Optional[Mapping[str, str]]) -> None:
        token = cookies.get(self._cookie_name) if cookies else None
        if token:
            self._sessions.destroy(token)


__all__ = ["DEFAULT_SESSION_COOKIE", "IdentityGate", "Resolution"]
