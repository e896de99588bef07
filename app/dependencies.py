"""FastAPI dependencies wiring the identity gate into request handling."""
from __future__ import annotations

from typing import Callable, Optional

from fastapi import Request, Response

from .identity import IdentityGate, Resolution


class SessionCookies:
    """Issue and clear the HttpOnly session cookie."""

    def __init__(self, gate: IdentityGate, *, secure: bool) -> None:
        self._gate = gate
        self._secure = secure

    @property
    def name(self) -> str:
        return self._gate.cookie_name

    def issue(self, response: Response, token: str) -> None:
        response.set_cookie(
            self._gate.cookie_name,
            token,
            max_age=self._gate.sessions.cookie_max_age,
            secure=self._secure,
            httponly=True,
            samesite="lax",
            path="/",
        )

    def clear(self, response: Response, token: Optional[str] = None) -> None:
        if token:
            self._gate.sessions.destroy(token)
        response.delete_cookie(self._gate.cookie_name, path="/")


def build_identity_dependency(
    gate: IdentityGate,
    cookies: SessionCookies,
) -> Callable[..., Resolution]:
    """Return a dependency that resolves the caller and refreshes the cookie.

    A live session has its cookie re-issued with a fresh ``Max-Age`` so it
    slides forward with use; a stale cookie is cleared.
    """

    def dependency(request: Request, response: Response) -> Resolution:
        resolution = gate.resolve(request.cookies)
        if resolution.authenticated and resolution.token:
            cookies.issue(response, resolution.token)
        elif resolution.token:
            cookies.clear(response)
        return resolution

    return dependency


__all__ = ["SessionCookies", "build_identity_dependency"]
