"""Application factory for the job application tracker."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

from fastapi import FastAPI

from .accounts import register_account_routes
from .api import register_api_routes
from .config import TrackerSettings, load_settings
from .database import Database
from .dependencies import SessionCookies, build_identity_dependency
from .identity import IdentityGate
from .sessions import SessionManager

logger = logging.getLogger("jobtracker.service")


def create_app(
    *,
    database: Database | None = None,
    settings: TrackerSettings | None = None,
    session_manager: SessionManager | None = None,
) -> FastAPI:
    """Build the ASGI application with explicitly constructed collaborators."""

    if settings is None:
        settings = load_settings()

    if database is None:
        database = Database(settings.database_path)
    database.initialize()

    if session_manager is None:
        session_manager = SessionManager(ttl=settings.session_ttl)

    if not settings.secure_cookies:
        logger.warning(
            "Session cookies are not marked as secure. Only disable secure cookies for"
            " local development."
        )

    gate = IdentityGate(session_manager, database, cookie_name=settings.session_cookie_name)
    cookies = SessionCookies(gate, secure=settings.secure_cookies)
    resolve_identity = build_identity_dependency(gate, cookies)

    app = FastAPI(
        title="Job Application Tracker",
        version="0.1.0",
        description="Track the job applications you have submitted.",
    )
    app.state.database = database
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.identity_gate = gate

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    register_account_routes(
        app,
        database,
        gate,
        cookies,
        resolve_identity=resolve_identity,
        password_min_length=settings.password_min_length,
    )
    register_api_routes(app, database, resolve_identity=resolve_identity)

    return app


def create_app_from_environment(config_path: Optional[str] = None) -> FastAPI:
    """Entry point used by ``uvicorn --factory``."""

    settings = load_settings(Path(config_path) if config_path else None)
    return create_app(settings=settings)


__all__ = ["create_app", "create_app_from_environment"]
