from __future__ import annotations

from pathlib import Path

import pytest

from app.database import Database
from app.models import ApplicationDraft, Identity


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db_path = tmp_path / "tracker.sqlite3"
    db = Database(db_path)
    db.initialize()
    return db


def test_create_and_authenticate_user(database: Database) -> None:
    user = database.create_user("Alice", " Alice@Example.com ", "Sup3rSecurePwd!")

    assert user.email == "alice@example.com"
    assert database.authenticate_user("alice@example.com", "Sup3rSecurePwd!") == user
    assert database.authenticate_user("ALICE@example.com", "Sup3rSecurePwd!") == user
    assert database.authenticate_user("alice@example.com", "wrong-password") is None
    assert database.authenticate_user("nobody@example.com", "Sup3rSecurePwd!") is None


def test_duplicate_email_is_rejected(database: Database) -> None:
    database.create_user("Alice", "alice@example.com", "Sup3rSecurePwd!")
    with pytest.raises(ValueError):
        database.create_user("Other Alice", "ALICE@example.com", "AnotherSecret123!")


def test_user_requires_name_and_password(database: Database) -> None:
    with pytest.raises(ValueError):
        database.create_user("  ", "tester@example.com", "AnotherSecret123!")
    with pytest.raises(ValueError):
        database.create_user("Tester", "tester@example.com", "")


def test_lookup_and_list_users(database: Database) -> None:
    first = database.create_user("First", "first@example.com", "AnotherSecret123!")
    second = database.create_user("Second", "second@example.com", "AnotherSecret123!")

    assert database.get_user(first.id) == first
    assert database.get_user_by_email("SECOND@example.com") == second
    assert database.get_user("missing") is None
    assert [user.id for user in database.list_users()] == [first.id, second.id]


def test_password_hash_is_not_stored_in_plain_text(database: Database) -> None:
    user = database.create_user("Alice", "alice@example.com", "Sup3rSecurePwd!")
    with database._transaction() as conn:
        stored = conn.execute("SELECT password_hash FROM users WHERE id = ?", (user.id,)).fetchone()[0]
    assert stored != "Sup3rSecurePwd!"
    assert stored.startswith("$pbkdf2-sha256$")


def test_initialize_is_idempotent(database: Database) -> None:
    user = database.create_user("Alice", "alice@example.com", "Sup3rSecurePwd!")
    database.initialize()
    database.initialize()
    assert database.get_user(user.id) == user


def test_delete_user_cascades_to_applications(database: Database) -> None:
    alice = database.create_user("Alice", "alice@example.com", "Sup3rSecurePwd!")
    bob = database.create_user("Bob", "bob@example.com", "Sup3rSecurePwd!")
    draft = ApplicationDraft("Acme", "Engineer", "2024-03-01")

    with database.scoped(Identity(alice.id)) as scope:
        scope.insert(draft)
        scope.insert(draft)
    with database.scoped(Identity(bob.id)) as scope:
        kept = scope.insert(draft)

    assert database.delete_user(alice.id) is True
    assert database.get_user(alice.id) is None
    assert database.delete_user(alice.id) is False

    with database._transaction() as conn, conn.read_guard.trusted():
        rows = conn.execute("SELECT id, owner FROM applications").fetchall()
    assert [(row["id"], row["owner"]) for row in rows] == [(kept.id, bob.id)]


def test_scoped_access_requires_identity(database: Database) -> None:
    with pytest.raises(ValueError):
        with database.scoped(None):  # type: ignore[arg-type]
            pass
    with pytest.raises(ValueError):
        with database.scoped(Identity("")):
            pass


def test_insert_generates_uuid_and_timestamps(database: Database) -> None:
    user = database.create_user("Alice", "alice@example.com", "Sup3rSecurePwd!")
    with database.scoped(Identity(user.id)) as scope:
        first = scope.insert(ApplicationDraft("Acme", "Engineer", "2024-03-01"))
        second = scope.insert(ApplicationDraft("Globex", "Analyst", "2024-03-02"))

    assert first.id != second.id
    assert len(first.id) == 36
    assert first.id[14] == "4"
    assert first.owner == user.id
    assert first.created_at == first.updated_at
