from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from userapp.database import Database
from userapp.errors import DuplicateKeyError, NotFoundError


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db_path = tmp_path / "userapp.sqlite3"
    db = Database(db_path)
    db.initialize()
    return db


def _insert(database: Database, login: str = "jdoe", email: str = "jdoe@example.com") -> int:
    return database.insert_user(
        login=login,
        firstname="John",
        lastname="Doe",
        email=email,
        password_hash="hash",
    )


def test_initialize_is_idempotent(database: Database) -> None:
    database.initialize()
    user_id = _insert(database)
    database.initialize()
    assert database.find_active_by_id(user_id) is not None


def test_insert_and_find_active(database: Database) -> None:
    user_id = _insert(database)

    by_id = database.find_active_by_id(user_id)
    assert by_id is not None
    assert by_id.login == "jdoe"
    assert by_id.email == "jdoe@example.com"
    assert by_id.firstname == "John"
    assert by_id.lastname == "Doe"
    assert by_id.deleted_at is None

    assert database.find_active_by_login("jdoe") == by_id
    assert database.find_active_by_email("jdoe@example.com") == by_id
    assert database.find_active_by_login("JDOE") is None


def test_insert_rejects_duplicate_login_and_email(database: Database) -> None:
    _insert(database)

    with pytest.raises(DuplicateKeyError) as login_conflict:
        _insert(database, email="other@example.com")
    assert login_conflict.value.field == "login"

    with pytest.raises(DuplicateKeyError) as email_conflict:
        _insert(database, login="other")
    assert email_conflict.value.field == "email"

    assert len(database.list_active()) == 1


def test_taken_checks_respect_excluded_user(database: Database) -> None:
    user_id = _insert(database)

    assert database.is_login_taken("jdoe")
    assert database.is_email_taken("jdoe@example.com")
    assert not database.is_login_taken("jdoe", exclude_id=user_id)
    assert not database.is_email_taken("jdoe@example.com", exclude_id=user_id)
    assert not database.is_login_taken("someone-else")


def test_soft_delete_keeps_row_and_frees_identifiers(database: Database) -> None:
    user_id = _insert(database)

    database.soft_delete_user(user_id)

    assert database.find_active_by_id(user_id) is None
    stored = database.get_user(user_id)
    assert stored is not None
    assert stored.deleted_at is not None
    assert not database.is_login_taken("jdoe")
    assert not database.is_email_taken("jdoe@example.com")
    assert database.list_active() == []

    replacement = _insert(database)
    assert replacement != user_id
    assert database.find_by_login("jdoe").id == replacement


def test_find_by_login_returns_deleted_user_when_no_active_one(database: Database) -> None:
    user_id = _insert(database)
    database.soft_delete_user(user_id)

    found = database.find_by_login("jdoe")
    assert found is not None
    assert found.id == user_id
    assert not found.is_active


def test_soft_delete_unknown_or_deleted_user_raises(database: Database) -> None:
    with pytest.raises(NotFoundError):
        database.soft_delete_user(999)

    user_id = _insert(database)
    database.soft_delete_user(user_id)
    with pytest.raises(NotFoundError):
        database.soft_delete_user(user_id)


def test_update_applies_only_supplied_fields(database: Database) -> None:
    user_id = _insert(database)

    database.update_user(user_id, firstname="Jane")

    user = database.find_active_by_id(user_id)
    assert user.firstname == "Jane"
    assert user.lastname == "Doe"
    assert user.login == "jdoe"


def test_update_conflict_and_missing_user(database: Database) -> None:
    first = _insert(database)
    _insert(database, login="other", email="other@example.com")

    with pytest.raises(DuplicateKeyError) as excinfo:
        database.update_user(first, email="other@example.com")
    assert excinfo.value.field == "email"

    with pytest.raises(NotFoundError):
        database.update_user(999, firstname="Nobody")

    database.soft_delete_user(first)
    with pytest.raises(NotFoundError):
        database.update_user(first, firstname="Ghost")
    with pytest.raises(NotFoundError):
        database.update_user(first)


def test_update_rejects_unknown_columns(database: Database) -> None:
    user_id = _insert(database)
    with pytest.raises(ValueError):
        database.update_user(user_id, deleted_at=None)


def test_login_log_is_append_only_and_newest_first(database: Database) -> None:
    user_id = _insert(database)

    first = database.record_login_attempt(user_id, "203.0.113.5")
    second = database.record_login_attempt(user_id, None)

    attempts = database.list_login_attempts(user_id)
    assert [attempt.id for attempt in attempts] == [second.id, first.id]
    assert attempts[1].ip_address == "203.0.113.5"
    assert attempts[0].ip_address is None
    assert database.list_login_attempts(user_id, limit=1) == [attempts[0]]


def test_storage_failures_propagate(tmp_path: Path) -> None:
    database = Database(tmp_path / "uninitialised.sqlite3")
    with pytest.raises(sqlite3.OperationalError):
        database.list_active()
