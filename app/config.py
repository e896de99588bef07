"""Configuration management for the job application tracker."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path
from .identity import DEFAULT_SESSION_COOKIE

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class TrackerSettings:
    """Runtime settings for the tracker service."""

    database_path: Path
    session_ttl: timedelta = timedelta(hours=8)
    secure_cookies: bool = True
    session_cookie_name: str = DEFAULT_SESSION_COOKIE
    log_level: str = "INFO"
    password_min_length: int = 12

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "TrackerSettings":
        """Create :class:`TrackerSettings` from raw dictionary data."""

        raw_db = data.get("database_path")
        if raw_db:
            candidate = Path(str(raw_db)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        settings = TrackerSettings(database_path=database_path)
        if "session_ttl_hours" in data:
            settings = replace(settings, session_ttl=_parse_hours(data["session_ttl_hours"], "session_ttl_hours"))
        if "secure_cookies" in data:
            settings = replace(settings, secure_cookies=_parse_flag(data["secure_cookies"], "secure_cookies"))
        if data.get("session_cookie_name"):
            settings = replace(settings, session_cookie_name=str(data["session_cookie_name"]).strip())
        if data.get("log_level"):
            settings = replace(settings, log_level=_parse_log_level(data["log_level"], "log_level"))
        if "password_min_length" in data:
            try:
                length = int(str(data["password_min_length"]))
            except ValueError as exc:
                raise ValueError("password_min_length must be an integer") from exc
            if length < 1:
                raise ValueError("password_min_length must be positive")
            settings = replace(settings, password_min_length=length)
        return settings


def _parse_hours(value: object, key: str) -> timedelta:
    try:
        hours = float(str(value))
    except ValueError as exc:
        raise ValueError(f"{key} must be a number of hours") from exc
    if hours <= 0:
        raise ValueError(f"{key} must be positive")
    return timedelta(hours=hours)


def _parse_flag(value: object, key: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean")


def _parse_log_level(value: object, key: str) -> str:
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"{key} must be a logging level name")
    return level


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the optional YAML configuration file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "tracker.yaml").resolve(strict=False)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> TrackerSettings:
    """Load settings from YAML (if present) and apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("TRACKER_CONFIG"))

    raw: Dict[str, object] = {}
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle) or {}
        if not isinstance(document, dict):
            raise ValueError("Configuration file must contain a mapping")
        section = document.get("tracker", {}) or {}
        if not isinstance(section, dict):
            raise ValueError("The 'tracker' section must be a mapping")
        raw.update(section)

    settings = TrackerSettings.from_dict(raw, base_path=path.parent)

    if env.get("TRACKER_DB_PATH"):
        settings = replace(settings, database_path=resolve_database_path(env["TRACKER_DB_PATH"]))
    if env.get("TRACKER_SESSION_TTL_HOURS"):
        settings = replace(
            settings,
            session_ttl=_parse_hours(env["TRACKER_SESSION_TTL_HOURS"], "TRACKER_SESSION_TTL_HOURS"),
        )
    if env.get("TRACKER_SESSION_SECURE"):
        settings = replace(
            settings,
            secure_cookies=_parse_flag(env["TRACKER_SESSION_SECURE"], "TRACKER_SESSION_SECURE"),
        )
    if env.get("TRACKER_LOG_LEVEL"):
        settings = replace(settings, log_level=_parse_log_level(env["TRACKER_LOG_LEVEL"], "TRACKER_LOG_LEVEL"))
    return settings


__all__ = ["TrackerSettings", "load_settings", "resolve_config_path"]
