"""Sign-up, sign-in and sign-out routes backed by server-side sessions."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from pydantic import BaseModel, Field, ValidationError, field_validator

from .database import Database
from .dependencies import SessionCookies
from .identity import IdentityGate, Resolution
from .models import User
from .validation import field_errors

logger = logging.getLogger("jobtracker.accounts")


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name must not be empty")
        return stripped

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        stripped = value.strip().lower()
        if "@" not in stripped or stripped.startswith("@") or stripped.endswith("@"):
            raise ValueError("email must be a valid address")
        return stripped


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)


def user_to_payload(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "created_at": user.created_at.isoformat(),
    }


def register_account_routes(
    app: FastAPI,
    database: Database,
    gate: IdentityGate,
    cookies: SessionCookies,
    *,
    resolve_identity: Callable[..., Resolution],
    password_min_length: int = 12,
) -> None:
    """Expose the account endpoints under ``/auth``."""

    router = APIRouter(prefix="/auth")

    async def _parse(request: Request, model):
        try:
            body = await request.json()
        except ValueError:
            return None, {"error": "Invalid JSON"}
        try:
            return model.model_validate(body), None
        except ValidationError as exc:
            return None, {"error": "Validation failed", "details": field_errors(exc)}

    def _start_session(response: Response, request: Request, user: User) -> None:
        existing = request.cookies.get(cookies.name)
        if existing:
            gate.sessions.destroy(existing)
        token = gate.sign_in(user)
        cookies.issue(response, token)

    @router.post("/signup")
    async def signup(request: Request, response: Response):
        payload, error = await _parse(request, SignupRequest)
        if payload is None:
            response.status_code = status.HTTP_400_BAD_REQUEST
            return error

        if len(payload.password) < password_min_length:
            response.status_code = status.HTTP_400_BAD_REQUEST
            return {
                "error": "Validation failed",
                "details": {"password": f"Password must be at least {password_min_length} characters long."},
            }

        try:
            user = database.create_user(payload.name, payload.email, payload.password)
        except ValueError as exc:
            response.status_code = status.HTTP_400_BAD_REQUEST
            return {"error": str(exc)}

        logger.info("User %s signed up", user.id)
        _start_session(response, request, user)
        response.status_code = status.HTTP_201_CREATED
        return {"user": user_to_payload(user)}

    @router.post("/login")
    async def login(request: Request, response: Response):
        payload, error = await _parse(request, LoginRequest)
        if payload is None:
            response.status_code = status.HTTP_400_BAD_REQUEST
            return error

        user = database.authenticate_user(payload.email, payload.password)
        if user is None:
            logger.warning("Failed sign-in attempt for %s", payload.email)
            response.status_code = status.HTTP_401_UNAUTHORIZED
            return {"error": "Invalid email or password."}

        _start_session(response, request, user)
        logger.info("User %s signed in", user.id)
        return {"user": user_to_payload(user)}

    @router.post("/logout")
    async def logout(request: Request, response: Response):
        gate.sign_out(request.cookies)
        cookies.clear(response)
        return {"success": True}

    @router.get("/me")
    async def read_current_user(response: Response, resolution: Resolution = Depends(resolve_identity)):
        if resolution.user is None:
            response.status_code = status.HTTP_401_UNAUTHORIZED
            return {"error": "Unauthorized"}
        return {"user": user_to_payload(resolution.user)}

    @router.delete("/me")
    async def delete_account(response: Response, resolution: Resolution = Depends(resolve_identity)):
        if resolution.identity is None:
            response.status_code = status.HTTP_401_UNAUTHORIZED
            return {"error": "Unauthorized"}

        user_id = resolution.identity.user_id
        database.delete_user(user_id)
        gate.sessions.destroy_for(user_id)
        cookies.clear(response)
        logger.info("User %s deleted their account", user_id)
        return {"success": True}

    app.include_router(router)


__all__ = ["LoginRequest", "SignupRequest", "register_account_routes", "user_to_payload"]
