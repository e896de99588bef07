"""Domain models for the job application tracker."""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Any, Dict, Optional, Union


class ApplicationStatus(str, enum.Enum):
    """Closed set of states an application may be in.

    Any status may be replaced by any other; no transitions are enforced.
    """

    APPLIED = "applied"
    INTERVIEWING = "interviewing"
    OFFER = "offer"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class _Unset:
    """Marker for a partial-update field that should be left unchanged."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()


@dataclass(frozen=True)
class User:
    """Represents an account stored in the tracker database."""

    id: str
    name: str
    email: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Identity:
    """A verified principal resolved from server-held session state."""

    user_id: str

    def __str__(self) -> str:
        return self.user_id


@dataclass(frozen=True)
class Application:
    """A persisted job application record."""

    id: str
    owner: str
    company_name: str
    position_title: str
    status: ApplicationStatus
    application_date: str
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner": self.owner,
            "company_name": self.company_name,
            "position_title": self.position_title,
            "status": self.status.value,
            "application_date": self.application_date,
            "notes": self.notes,
            "created_at": self.created_at.isoformat(timespec="microseconds"),
            "updated_at": self.updated_at.isoformat(timespec="microseconds"),
        }


@dataclass(frozen=True)
class ApplicationDraft:
    """Validated fields for a new application. Owner and id are never part of it."""

    company_name: str
    position_title: str
    application_date: str
    status: ApplicationStatus = ApplicationStatus.APPLIED
    notes: Optional[str] = None


@dataclass(frozen=True)
class ApplicationChanges:
    """Validated partial update; fields left as ``UNSET`` are not touched.

    ``notes=None`` clears the notes, whereas ``notes=UNSET`` keeps them.
    """

    company_name: Union[str, _Unset] = UNSET
    position_title: Union[str, _Unset] = UNSET
    application_date: Union[str, _Unset] = UNSET
    status: Union[ApplicationStatus, _Unset] = UNSET
    notes: Union[str, None, _Unset] = UNSET

    def assignments(self) -> Dict[str, Any]:
        """Return the column/value pairs that should be written."""

        values: Dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is UNSET:
                continue
            if isinstance(value, ApplicationStatus):
                value = value.value
            values[field.name] = value
        return values

    def is_empty(self) -> bool:
        return not self.assignments()


__all__ = [
    "Application",
    "ApplicationChanges",
    "ApplicationDraft",
    "ApplicationStatus",
    "Identity",
    "UNSET",
    "User",
]
