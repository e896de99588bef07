"""Ownership-scoped data access for job applications.

Every operation checks that a verified identity is present before
validating input or touching storage, and every failure is reported as a
:class:`~app.results.Result` rather than raised. Typed drafts and change
sets go through the same validation as raw payloads.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import asdict
from typing import Any, List, Mapping, Optional, Union

from pydantic import ValidationError

from .database import Database
from .models import Application, ApplicationChanges, ApplicationDraft, Identity
from .results import ErrorKind, Result
from .validation import ApplicationCreate, ApplicationUpdate, field_errors, is_valid_application_id

logger = logging.getLogger("jobtracker.store")

INVALID_ID_MESSAGE = "Invalid application ID"
NO_CHANGES_MESSAGE = "No fields to update"


class ApplicationStore:
    """CRUD over the caller's own applications.

    Built per request with the identity resolved by the identity gate;
    ``identity`` is ``None`` when the request is unauthenticated.
    """

    def __init__(self, database: Database, identity: Optional[Identity]) -> None:
        self._database = database
        self._identity = identity

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    def list(self) -> Result[List[Application]]:
        if self._identity is None:
            return Result.unauthenticated()
        try:
            with self._database.scoped(self._identity) as scope:
                return Result.ok(scope.select_all())
        except sqlite3.Error:
            return self._storage_failure("fetching applications", "Unable to load applications. Please try again.")

    def get_by_id(self, application_id: str) -> Result[Application]:
        if self._identity is None:
            return Result.unauthenticated()
        normalized = _normalise_id(application_id)
        if normalized is None:
            return Result.invalid({"id": INVALID_ID_MESSAGE}, INVALID_ID_MESSAGE)
        try:
            with self._database.scoped(self._identity) as scope:
                application = scope.select_one(normalized)
        except sqlite3.Error:
            return self._storage_failure("fetching application", "Unable to load the application. Please try again.")
        if application is None:
            return Result.not_found()
        return Result.ok(application)

    def create(self, fields: Union[ApplicationDraft, Mapping[str, Any]]) -> Result[Application]:
        if self._identity is None:
            return Result.unauthenticated()

        payload = asdict(fields) if isinstance(fields, ApplicationDraft) else dict(fields)
        try:
            draft = ApplicationCreate.model_validate(payload).to_draft()
        except ValidationError as exc:
            return Result.invalid(field_errors(exc))

        try:
            with self._database.scoped(self._identity) as scope:
                application = scope.insert(draft)
        except sqlite3.Error:
            return self._storage_failure("creating application", "Unable to create application. Please try again.")

        logger.info("User %s created application %s", self._identity.user_id, application.id)
        return Result.ok(application)

    def update(
        self,
        application_id: str,
        fields: Union[ApplicationChanges, Mapping[str, Any]],
    ) -> Result[Application]:
        if self._identity is None:
            return Result.unauthenticated()

        normalized = _normalise_id(application_id)
        if normalized is None:
            return Result.invalid({"id": INVALID_ID_MESSAGE}, INVALID_ID_MESSAGE)

        payload = fields.assignments() if isinstance(fields, ApplicationChanges) else dict(fields)
        if not payload:
            return Result.fail(ErrorKind.VALIDATION, NO_CHANGES_MESSAGE)
        try:
            changes = ApplicationUpdate.model_validate(payload).to_changes()
        except ValidationError as exc:
            return Result.invalid(field_errors(exc))

        if changes.is_empty():
            return Result.fail(ErrorKind.VALIDATION, NO_CHANGES_MESSAGE)

        try:
            with self._database.scoped(self._identity) as scope:
                application = scope.update(normalized, changes.assignments())
        except sqlite3.Error:
            return self._storage_failure("updating application", "Unable to update application. Please try again.")

        if application is None:
            return Result.not_found()
        logger.info("User %s updated application %s", self._identity.user_id, application.id)
        return Result.ok(application)

    def delete(self, application_id: str) -> Result[dict]:
        if self._identity is None:
            return Result.unauthenticated()

        normalized = _normalise_id(application_id)
        if normalized is None:
            return Result.invalid({"id": INVALID_ID_MESSAGE}, INVALID_ID_MESSAGE)

        try:
            with self._database.scoped(self._identity) as scope:
                deleted = scope.delete(normalized)
        except sqlite3.Error:
            return self._storage_failure("deleting application", "Unable to delete application. Please try again.")

        if deleted is None:
            return Result.not_found()
        logger.info("User %s deleted application %s", self._identity.user_id, deleted)
        return Result.ok({"id": deleted})

    def _storage_failure(self, action: str, message: str) -> Result[Any]:
        logger.exception(
            "Storage error while %s for user %s",
            action,
            self._identity.user_id if self._identity is not None else "<anonymous>",
        )
        return Result.fail(ErrorKind.STORAGE, message)


def _normalise_id(value: object) -> Optional[str]:
    if not is_valid_application_id(value):
        return None
    return str(value).strip().lower()


__all__ = ["ApplicationStore", "INVALID_ID_MESSAGE", "NO_CHANGES_MESSAGE"]
