"""SQLite-backed persistence for accounts and job applications."""
from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from passlib.context import CryptContext

from .models import Application, ApplicationDraft, ApplicationStatus, Identity, User
from .policy import (
    APPLICATION_POLICIES,
    Command,
    ReadGuard,
    enforce,
    install_identity,
    install_read_guard,
    policy_object_names,
    render_policy_sql,
    visible_view_name,
)

APPLICATIONS_TABLE = "applications"
VISIBLE_APPLICATIONS = visible_view_name(APPLICATIONS_TABLE)
IMMUTABLE_COLUMNS_TRIGGER = "applications_immutable_columns"
TOUCH_UPDATED_AT_TRIGGER = "applications_touch_updated_at"

Clock = Callable[[], datetime]


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the tracker database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "tracker.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def _verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except ValueError:
        return False


# Engine-generated UUIDv4 text identifier.
_UUID_DEFAULT = (
    "lower(hex(randomblob(4))) || '-' || lower(hex(randomblob(2))) || '-4' || "
    "substr(lower(hex(randomblob(2))), 2) || '-' || "
    "substr('89ab', 1 + (abs(random()) % 4), 1) || "
    "substr(lower(hex(randomblob(2))), 2) || '-' || lower(hex(randomblob(6)))"
)

_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in ApplicationStatus)

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS {APPLICATIONS_TABLE} (
    id TEXT PRIMARY KEY NOT NULL DEFAULT ({_UUID_DEFAULT}),
    owner TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    company_name TEXT NOT NULL CHECK (length(trim(company_name)) > 0),
    position_title TEXT NOT NULL CHECK (length(trim(position_title)) > 0),
    status TEXT NOT NULL DEFAULT 'applied' CHECK (status IN ({_STATUS_VALUES})),
    application_date TEXT NOT NULL
        CHECK (application_date GLOB '[0-9][0-9][0-9][0-9]-[0-9][0-9]-[0-9][0-9]'),
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_applications_owner ON {APPLICATIONS_TABLE}(owner);
CREATE INDEX IF NOT EXISTS idx_applications_created_at ON {APPLICATIONS_TABLE}(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_applications_owner_created_at
    ON {APPLICATIONS_TABLE}(owner, created_at DESC);

CREATE TRIGGER IF NOT EXISTS {IMMUTABLE_COLUMNS_TRIGGER}
BEFORE UPDATE ON {APPLICATIONS_TABLE}
FOR EACH ROW WHEN NEW.id IS NOT OLD.id OR NEW.created_at IS NOT OLD.created_at
BEGIN
    SELECT RAISE(ABORT, 'id and created_at are immutable');
END;

CREATE TRIGGER IF NOT EXISTS {TOUCH_UPDATED_AT_TRIGGER}
AFTER UPDATE ON {APPLICATIONS_TABLE}
FOR EACH ROW WHEN NEW.updated_at IS OLD.updated_at
BEGIN
    UPDATE {APPLICATIONS_TABLE} SET updated_at = next_timestamp(OLD.updated_at) WHERE id = NEW.id;
END;
"""

# Views and triggers allowed to read the applications table directly.
_POLICY_READERS = (
    *policy_object_names(APPLICATIONS_TABLE),
    IMMUTABLE_COLUMNS_TRIGGER,
    TOUCH_UPDATED_AT_TRIGGER,
)


class GuardedConnection(sqlite3.Connection):
    """Connection carrying the :class:`~app.policy.ReadGuard` installed on it."""

    read_guard: ReadGuard


_UPDATABLE_COLUMNS = {
    "company_name": "company_name",
    "position_title": "position_title",
    "application_date": "application_date",
    "status": "status",
    "notes": "notes",
}


class Database:
    """Thin wrapper around SQLite for accounts and their applications.

    Application rows are only reachable through :meth:`scoped`, which binds
    the caller's identity to the connection so the row policy applies.
    """

    def __init__(self, path: Path, *, clock: Optional[Clock] = None) -> None:
        _ensure_directory(path)
        self._path = path
        self._clock: Clock = clock or _current_timestamp

    @property
    def path(self) -> Path:
        return self._path

    def now(self) -> datetime:
        return self._clock()

    def next_timestamp(self, previous: Optional[str]) -> str:
        """Return the current time, nudged forward so it exceeds ``previous``."""

        current = self._clock()
        if previous:
            floor = _parse_datetime(previous) + timedelta(microseconds=1)
            if current < floor:
                current = floor
        return _serialize_datetime(current)

    def _connect(self, identity: Optional[Identity] = None) -> GuardedConnection:
        conn = sqlite3.connect(self._path, check_same_thread=False, factory=GuardedConnection)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA trusted_schema = ON")
        install_identity(conn, identity.user_id if identity is not None else None)
        conn.create_function("next_timestamp", 1, self.next_timestamp)
        conn.read_guard = install_read_guard(conn, APPLICATIONS_TABLE, _POLICY_READERS)
        return conn

    @contextmanager
    def _transaction(self, identity: Optional[Identity] = None) -> Iterator[GuardedConnection]:
        conn = self._connect(identity)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create tables, indexes and the row policy if they do not already exist."""

        with self._transaction() as conn, conn.read_guard.trusted():
            conn.executescript(_SCHEMA)
            for statement in render_policy_sql(APPLICATIONS_TABLE, APPLICATION_POLICIES):
                conn.execute(statement)

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: Optional[str], password: str) -> User:
        """Create a new account and return it."""

        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("Name must not be empty")
        if not password:
            raise ValueError("Password must not be empty")

        user_id = str(uuid.uuid4())
        created_at = self._clock()
        normalized_email = email.strip().lower() if email else None

        with self._transaction() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        user_id,
                        normalized_name,
                        normalized_email,
                        _hash_password(password),
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("A user with that email already exists") from exc

        return User(id=user_id, name=normalized_name, email=normalized_email, created_at=created_at)

    def get_user(self, user_id: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> List[User]:
        with self._transaction() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY created_at").fetchall()
        return [self._row_to_user(row) for row in rows]

    def authenticate_user(self, email: str, password: str) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (email.strip().lower(),),
            ).fetchone()
        if row is None:
            return None
        stored_hash = row["password_hash"]
        if not stored_hash or not _verify_password(password, stored_hash):
            return None
        return self._row_to_user(row)

    def delete_user(self, user_id: str) -> bool:
        """Remove an account; its applications are removed by the cascade.

        The statement runs under the departing user's identity so the
        cascaded deletes pass the row policy.
        """

        with self._transaction(Identity(user_id)) as conn, conn.read_guard.trusted():
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
            return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Scoped application access
    # ------------------------------------------------------------------
    @contextmanager
    def scoped(self, identity: Identity) -> Iterator["ScopedApplications"]:
        """Open a connection bound to ``identity`` for application access."""

        if identity is None or not identity.user_id:
            raise ValueError("A verified identity is required for application access")
        conn = self._connect(identity)
        try:
            yield ScopedApplications(conn, identity, self)
        finally:
            conn.close()

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=str(row["id"]),
            name=str(row["name"]),
            email=row["email"],
            created_at=_parse_datetime(str(row["created_at"])),
        )


class ScopedApplications:
    """Application queries for one caller.

    Every statement filters on ``owner`` explicitly and is additionally
    subject to the engine policy bound to the connection. Reads go through
    the policy view; writes name the base table and run as trusted
    statements, so the policy triggers screen every row they touch. Each
    method is a single atomic statement.
    """

    def __init__(self, conn: GuardedConnection, identity: Identity, database: Database) -> None:
        self._conn = conn
        self._identity = identity
        self._database = database

    @property
    def identity(self) -> Identity:
        return self._identity

    def select_all(self) -> List[Application]:
        rows = self._conn.execute(
            f"SELECT * FROM {VISIBLE_APPLICATIONS} WHERE owner = ? ORDER BY created_at DESC",
            (self._identity.user_id,),
        ).fetchall()
        return [_row_to_application(row) for row in rows]

    def select_one(self, application_id: str) -> Optional[Application]:
        row = self._conn.execute(
            f"SELECT * FROM {VISIBLE_APPLICATIONS} WHERE id = ? AND owner = ?",
            (application_id, self._identity.user_id),
        ).fetchone()
        if row is None:
            return None
        return _row_to_application(row)

    def insert(self, draft: ApplicationDraft) -> Application:
        owner = self._identity.user_id
        enforce(Command.INSERT, caller=owner, new_owner=owner)
        timestamp = _serialize_datetime(self._database.now())
        with self._conn, self._conn.read_guard.trusted():
            rows = self._conn.execute(
                f"""
                INSERT INTO {APPLICATIONS_TABLE} (
                    owner, company_name, position_title, status,
                    application_date, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING *
                """,
                (
                    owner,
                    draft.company_name,
                    draft.position_title,
                    draft.status.value,
                    draft.application_date,
                    draft.notes,
                    timestamp,
                    timestamp,
                ),
            ).fetchall()
        if not rows:
            raise RuntimeError("Insert did not return the new application")
        return _row_to_application(rows[0])

    def update(self, application_id: str, values: Dict[str, Any]) -> Optional[Application]:
        """Apply ``values`` and return the updated row, or ``None`` if none matched."""

        updates: List[str] = []
        params: List[Any] = []
        for key, column in _UPDATABLE_COLUMNS.items():
            if key not in values:
                continue
            updates.append(f"{column} = ?")
            params.append(values[key])

        if not updates:
            raise ValueError("No fields to update")

        updates.append("updated_at = next_timestamp(updated_at)")
        params.extend([application_id, self._identity.user_id])
        query = (
            f"UPDATE {APPLICATIONS_TABLE} SET {', '.join(updates)} "
            "WHERE id = ? AND owner = ? RETURNING *"
        )
        with self._conn, self._conn.read_guard.trusted():
            rows = self._conn.execute(query, params).fetchall()
        if not rows:
            return None
        return _row_to_application(rows[0])

    def delete(self, application_id: str) -> Optional[str]:
        with self._conn, self._conn.read_guard.trusted():
            rows = self._conn.execute(
                f"DELETE FROM {APPLICATIONS_TABLE} WHERE id = ? AND owner = ? RETURNING id",
                (application_id, self._identity.user_id),
            ).fetchall()
        if not rows:
            return None
        return str(rows[0]["id"])


def _row_to_application(row: sqlite3.Row) -> Application:
    return Application(
        id=str(row["id"]),
        owner=str(row["owner"]),
        company_name=str(row["company_name"]),
        position_title=str(row["position_title"]),
        status=ApplicationStatus(str(row["status"])),
        application_date=str(row["application_date"]),
        notes=row["notes"],
        created_at=_parse_datetime(str(row["created_at"])),
        updated_at=_parse_datetime(str(row["updated_at"])),
    )


__all__ = ["Database", "ScopedApplications", "resolve_database_path"]
