"""Input validation for application payloads."""
from __future__ import annotations

import re
import uuid
from datetime import date
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import ApplicationChanges, ApplicationDraft, ApplicationStatus

NAME_MAX_LENGTH = 200
NOTES_MAX_LENGTH = 2000

IMMUTABLE_FIELDS = ("id", "owner", "user_id", "created_at", "updated_at")

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _check_name(value: str, label: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError(f"{label} is required")
    if len(stripped) > NAME_MAX_LENGTH:
        raise ValueError(f"{label} must be less than {NAME_MAX_LENGTH} characters")
    return stripped


def _check_date(value: str) -> str:
    stripped = value.strip()
    if not _DATE_RE.match(stripped):
        raise ValueError("Date must be in YYYY-MM-DD format")
    try:
        date.fromisoformat(stripped)
    except ValueError as exc:
        raise ValueError("Invalid date") from exc
    return stripped


def _normalise_notes(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if len(value) > NOTES_MAX_LENGTH:
        raise ValueError(f"Notes must be less than {NOTES_MAX_LENGTH} characters")
    if not value.strip():
        return None
    return value


class ApplicationCreate(BaseModel):
    """Fields accepted when creating an application.

    Identifier, owner and timestamp keys sent by a client are discarded.
    """

    model_config = ConfigDict(extra="ignore")

    company_name: str
    position_title: str
    application_date: str
    status: ApplicationStatus = ApplicationStatus.APPLIED
    notes: Optional[str] = Field(default=None)

    @field_validator("company_name")
    @classmethod
    def _company(cls, value: str) -> str:
        return _check_name(value, "Company name")

    @field_validator("position_title")
    @classmethod
    def _position(cls, value: str) -> str:
        return _check_name(value, "Position title")

    @field_validator("application_date")
    @classmethod
    def _date(cls, value: str) -> str:
        return _check_date(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: object) -> object:
        if isinstance(value, ApplicationStatus):
            return value
        if value is None or value == "":
            return ApplicationStatus.APPLIED
        if isinstance(value, str) and value not in {s.value for s in ApplicationStatus}:
            raise ValueError("Invalid status value")
        return value

    @field_validator("notes")
    @classmethod
    def _notes(cls, value: Optional[str]) -> Optional[str]:
        return _normalise_notes(value)

    def to_draft(self) -> ApplicationDraft:
        return ApplicationDraft(
            company_name=self.company_name,
            position_title=self.position_title,
            application_date=self.application_date,
            status=self.status,
            notes=self.notes,
        )


class ApplicationUpdate(BaseModel):
    """Partial update. Only keys present in the payload are applied.

    Identifier, owner and timestamp keys are rejected, as are unknown keys.
    """

    model_config = ConfigDict(extra="forbid")

    company_name: Optional[str] = None
    position_title: Optional[str] = None
    application_date: Optional[str] = None
    status: Optional[ApplicationStatus] = None
    notes: Optional[str] = None

    @field_validator("company_name")
    @classmethod
    def _company(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            raise ValueError("Company name cannot be empty")
        return _check_name(value, "Company name")

    @field_validator("position_title")
    @classmethod
    def _position(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            raise ValueError("Position title cannot be empty")
        return _check_name(value, "Position title")

    @field_validator("application_date")
    @classmethod
    def _date(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            raise ValueError("Date must be in YYYY-MM-DD format")
        return _check_date(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status(cls, value: object) -> object:
        if isinstance(value, ApplicationStatus):
            return value
        if not isinstance(value, str) or value not in {s.value for s in ApplicationStatus}:
            raise ValueError("Invalid status value")
        return value

    @field_validator("notes")
    @classmethod
    def _notes(cls, value: Optional[str]) -> Optional[str]:
        return _normalise_notes(value)

    def to_changes(self) -> ApplicationChanges:
        supplied = {name: getattr(self, name) for name in self.model_fields_set}
        return ApplicationChanges(**supplied)


def field_errors(exc: ValidationError) -> Dict[str, str]:
    """Collapse a pydantic error into ``{field: message}`` (first message wins)."""

    errors: Dict[str, str] = {}
    for error in exc.errors():
        location = error.get("loc") or ()
        field = str(location[0]) if location else "__root__"
        if error.get("type") == "extra_forbidden":
            if field in IMMUTABLE_FIELDS:
                message = "Field is immutable and cannot be updated"
            else:
                message = "Unknown field"
        else:
            message = str(error.get("msg", "Invalid value"))
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
        errors.setdefault(field, message)
    return errors


def is_valid_application_id(value: object) -> bool:
    """Return ``True`` if ``value`` is a canonical UUID string."""

    if not isinstance(value, str):
        return False
    candidate = value.strip()
    try:
        parsed = uuid.UUID(candidate)
    except ValueError:
        return False
    return str(parsed) == candidate.lower()


__all__ = [
    "ApplicationCreate",
    "ApplicationUpdate",
    "IMMUTABLE_FIELDS",
    "NAME_MAX_LENGTH",
    "NOTES_MAX_LENGTH",
    "field_errors",
    "is_valid_application_id",
]
