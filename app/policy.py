"""Declarative row-level access policy for the ``applications`` table.

SQLite has no native row security, so the rules below are rendered into
engine objects that apply no matter which statement application code runs:

* a ``visible_<table>`` view implementing the SELECT rule,
* ``BEFORE INSERT``/``BEFORE UPDATE`` triggers that abort when a written row
  fails the WITH CHECK rule,
* ``BEFORE UPDATE``/``BEFORE DELETE`` triggers that skip (``RAISE(IGNORE)``)
  rows failing the USING rule, so foreign rows behave as if absent.

The caller is exposed to the engine through the per-connection SQL function
``auth_uid()``; :func:`install_identity` binds it. A connection without a
bound identity sees no rows and can write none.

Reads of the base table itself are refused by a per-connection authorizer
(:func:`install_read_guard`) unless they come from the view, a policy
trigger, or a statement the data layer runs inside :meth:`ReadGuard.trusted`.
"""

from __future__ import annotations

import enum
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence

AUTH_UID_FUNCTION = "auth_uid"


class Command(str, enum.Enum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class PolicyViolation(Exception):
    """Raised by :func:`enforce` when a rule rejects an operation."""

    def __init__(self, policy: "RowPolicy") -> None:
        self.policy = policy
        super().__init__(f'row violates row-level security policy "{policy.name}"')


@dataclass(frozen=True)
class OwnerMatchesCaller:
    """Predicate: the row's owner column equals the verified caller."""

    column: str = "owner"

    def to_sql(self, row: str = "") -> str:
        ref = f"{row}.{self.column}" if row else self.column
        return f"({AUTH_UID_FUNCTION}() IS NOT NULL AND {ref} = {AUTH_UID_FUNCTION}())"

    def evaluate(self, owner: Optional[str], caller: Optional[str]) -> bool:
        if caller is None or owner is None:
            return False
        return str(owner) == str(caller)


@dataclass(frozen=True)
class RowPolicy:
    """One rule attached to a table for a single command.

    ``using`` filters existing rows, ``with_check`` validates rows being
    written.
    """

    name: str
    command: Command
    using: Optional[OwnerMatchesCaller] = None
    with_check: Optional[OwnerMatchesCaller] = None

    def allows(
        self,
        *,
        caller: Optional[str],
        row_owner: Optional[str] = None,
        new_owner: Optional[str] = None,
    ) -> bool:
        if self.using is not None and not self.using.evaluate(row_owner, caller):
            return False
        if self.with_check is not None and not self.with_check.evaluate(new_owner, caller):
            return False
        return True


_OWNER = OwnerMatchesCaller("owner")

APPLICATION_POLICIES: tuple[RowPolicy, ...] = (
    RowPolicy("Users can view their own applications", Command.SELECT, using=_OWNER),
    RowPolicy("Users can insert their own applications", Command.INSERT, with_check=_OWNER),
    RowPolicy(
        "Users can update their own applications",
        Command.UPDATE,
        using=_OWNER,
        with_check=_OWNER,
    ),
    RowPolicy("Users can delete their own applications", Command.DELETE, using=_OWNER),
)


def policies_for(command: Command, policies: Iterable[RowPolicy] = APPLICATION_POLICIES) -> List[RowPolicy]:
    return [policy for policy in policies if policy.command is command]


def permits(
    command: Command,
    *,
    caller: Optional[str],
    row_owner: Optional[str] = None,
    new_owner: Optional[str] = None,
    policies: Iterable[RowPolicy] = APPLICATION_POLICIES,
) -> bool:
    """Evaluate the rules in Python exactly as the engine does.

    A command with no attached policy is denied.
    """

    matching = policies_for(command, policies)
    if not matching:
        return False
    return all(
        policy.allows(caller=caller, row_owner=row_owner, new_owner=new_owner)
        for policy in matching
    )


def enforce(
    command: Command,
    *,
    caller: Optional[str],
    row_owner: Optional[str] = None,
    new_owner: Optional[str] = None,
    policies: Iterable[RowPolicy] = APPLICATION_POLICIES,
) -> None:
    for policy in policies_for(command, policies):
        if not policy.allows(caller=caller, row_owner=row_owner, new_owner=new_owner):
            raise PolicyViolation(policy)


def visible_view_name(table: str) -> str:
    return f"visible_{table}"


def _trigger_name(table: str, suffix: str) -> str:
    return f"{table}_policy_{suffix}"


def _abort(policy: RowPolicy) -> str:
    message = f'new row violates row-level security policy "{policy.name}"'
    return "SELECT RAISE(ABORT, '" + message.replace("'", "''") + "');"


def render_policy_sql(table: str, policies: Sequence[RowPolicy] = APPLICATION_POLICIES) -> List[str]:
    """Return the DDL statements that attach ``policies`` to ``table``.

    Existing policy objects are dropped first so the statements can be
    re-applied on every start-up.
    """

    view = visible_view_name(table)
    statements: List[str] = [f"DROP VIEW IF EXISTS {view}"]
    for suffix in ("insert_check", "update_using", "update_check", "delete_using"):
        statements.append(f"DROP TRIGGER IF EXISTS {_trigger_name(table, suffix)}")

    select_rules = [p.using.to_sql() for p in policies_for(Command.SELECT, policies) if p.using]
    where = " AND ".join(select_rules) if select_rules else "0"
    statements.append(f"CREATE VIEW {view} AS SELECT * FROM {table} WHERE {where}")

    for policy in policies_for(Command.INSERT, policies):
        if policy.with_check is None:
            continue
        statements.append(
            f"""
            CREATE TRIGGER {_trigger_name(table, "insert_check")}
            BEFORE INSERT ON {table}
            FOR EACH ROW WHEN NOT {policy.with_check.to_sql("NEW")}
            BEGIN
                {_abort(policy)}
            END
            """
        )

    for policy in policies_for(Command.UPDATE, policies):
        if policy.using is not None:
            statements.append(
                f"""
                CREATE TRIGGER {_trigger_name(table, "update_using")}
                BEFORE UPDATE ON {table}
                FOR EACH ROW WHEN NOT {policy.using.to_sql("OLD")}
                BEGIN
                    SELECT RAISE(IGNORE);
                END
                """
            )
        if policy.with_check is not None:
            visible = policy.using.to_sql("OLD") if policy.using is not None else "1"
            statements.append(
                f"""
                CREATE TRIGGER {_trigger_name(table, "update_check")}
                BEFORE UPDATE ON {table}
                FOR EACH ROW WHEN {visible} AND NOT {policy.with_check.to_sql("NEW")}
                BEGIN
                    {_abort(policy)}
                END
                """
            )

    for policy in policies_for(Command.DELETE, policies):
        if policy.using is None:
            continue
        statements.append(
            f"""
            CREATE TRIGGER {_trigger_name(table, "delete_using")}
            BEFORE DELETE ON {table}
            FOR EACH ROW WHEN NOT {policy.using.to_sql("OLD")}
            BEGIN
                SELECT RAISE(IGNORE);
            END
            """
        )

    return statements


def policy_object_names(table: str) -> List[str]:
    """Names of the view and triggers :func:`render_policy_sql` creates."""

    names = [visible_view_name(table)]
    names.extend(
        _trigger_name(table, suffix)
        for suffix in ("insert_check", "update_using", "update_check", "delete_using")
    )
    return names


def install_identity(conn: sqlite3.Connection, caller: Optional[str]) -> None:
    """Bind ``auth_uid()`` on ``conn`` to ``caller`` (``None`` for no identity)."""

    value = str(caller) if caller is not None else None
    conn.create_function(AUTH_UID_FUNCTION, 0, lambda: value)


class ReadGuard:
    """SQLite authorizer that keeps ``table`` unreadable outside policy objects.

    A column read of ``table`` is allowed when the inner-most view or trigger
    responsible for it is one of ``sources``. Statements prepared inside
    :meth:`trusted` may read the table directly; the data layer uses this for
    its owner-filtered writes, whose rows are still screened by the triggers.
    """

    def __init__(self, table: str, sources: Iterable[str]) -> None:
        self._table = table
        self._sources = frozenset(sources)
        self._depth = 0

    @contextmanager
    def trusted(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1

    def __call__(
        self,
        action: int,
        arg1: Optional[str],
        arg2: Optional[str],
        dbname: Optional[str],
        source: Optional[str],
    ) -> int:
        if action != sqlite3.SQLITE_READ or arg1 != self._table:
            return sqlite3.SQLITE_OK
        if self._depth or source in self._sources:
            return sqlite3.SQLITE_OK
        return sqlite3.SQLITE_DENY


def install_read_guard(conn: sqlite3.Connection, table: str, sources: Iterable[str]) -> ReadGuard:
    """Attach a :class:`ReadGuard` for ``table`` to ``conn`` and return it."""

    guard = ReadGuard(table, sources)
    conn.set_authorizer(guard)
    return guard


__all__ = [
    "APPLICATION_POLICIES",
    "AUTH_UID_FUNCTION",
    "Command",
    "OwnerMatchesCaller",
    "PolicyViolation",
    "ReadGuard",
    "RowPolicy",
    "enforce",
    "install_identity",
    "install_read_guard",
    "permits",
    "policies_for",
    "policy_object_names",
    "render_policy_sql",
    "visible_view_name",
]
