"""SQLite-backed persistence for user accounts and the login log."""
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import DuplicateKeyError, NotFoundError
from .models import LoginAttempt, User

logger = logging.getLogger("userapp.database")

_UPDATABLE_COLUMNS = ("login", "email", "firstname", "lastname", "password_hash")
_UNIQUE_COLUMNS = ("login", "email")


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "userapp.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _duplicate_field(exc: sqlite3.IntegrityError) -> Optional[str]:
    message = str(exc)
    for column in _UNIQUE_COLUMNS:
        if f"users.{column}" in message:
            return column
    return None


class Database:
    """Simple wrapper around SQLite for persisting users and login attempts.

    Every call opens its own connection so the object can be shared between
    request handlers. Uniqueness of ``login`` and ``email`` among active users
    is enforced by partial unique indexes, which makes concurrent inserts of
    the same value fail atomically inside SQLite.
    """

    def __init__(self, path: Path, *, timeout: float = 5.0) -> None:
        _ensure_directory(path)
        self._path = path
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    login TEXT NOT NULL,
                    firstname TEXT NOT NULL,
                    lastname TEXT NOT NULL,
                    email TEXT NOT NULL,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    deleted_at TEXT
                );

                CREATE TABLE IF NOT EXISTS login_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    ip_address TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE UNIQUE INDEX IF NOT EXISTS idx_users_active_login
                    ON users(login) WHERE deleted_at IS NULL;
                CREATE UNIQUE INDEX IF NOT EXISTS idx_users_active_email
                    ON users(email) WHERE deleted_at IS NULL;
                CREATE INDEX IF NOT EXISTS idx_login_logs_user_id ON login_logs(user_id);
                """
            )

    # ------------------------------------------------------------------
    # User lookups
    # ------------------------------------------------------------------
    def get_user(self, user_id: int) -> Optional[User]:
        """Return the user regardless of whether it has been soft-deleted."""

        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_active_by_id(self, user_id: int) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE id = ? AND deleted_at IS NULL",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_active_by_login(self, login: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE login = ? AND deleted_at IS NULL",
                (login,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_active_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? AND deleted_at IS NULL",
                (email,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def find_by_login(self, login: str) -> Optional[User]:
        """Return the user holding ``login`` in any state.

        An active row wins over soft-deleted ones; among deleted rows the most
        recently created one is returned.
        """

        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM users
                 WHERE login = ?
                 ORDER BY deleted_at IS NOT NULL, id DESC
                 LIMIT 1
                """,
                (login,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def is_login_taken(self, login: str, exclude_id: Optional[int] = None) -> bool:
        return self._is_taken("login", login, exclude_id)

    def is_email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        return self._is_taken("email", email, exclude_id)

    def list_active(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM users WHERE deleted_at IS NULL ORDER BY id"
            ).fetchall()
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------
    # User mutations
    # ------------------------------------------------------------------
    def insert_user(
        self,
        *,
        login: str,
        firstname: str,
        lastname: str,
        email: str,
        password_hash: str,
    ) -> int:
        """Insert a new active user and return its id."""

        created_at = _current_timestamp()
        with self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (login, firstname, lastname, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        login,
                        firstname,
                        lastname,
                        email,
                        password_hash,
                        _serialize_datetime(created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                field = _duplicate_field(exc)
                if field is None:
                    raise
                raise DuplicateKeyError(field) from exc
            user_id = cursor.lastrowid

        logger.debug("Inserted user %s", user_id)
        return int(user_id)

    def update_user(self, user_id: int, **fields: str) -> None:
        """Apply the supplied column values to an active user."""

        unknown = set(fields) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Unsupported user fields: {', '.join(sorted(unknown))}")

        updates: List[str] = []
        values: List[object] = []
        for column in _UPDATABLE_COLUMNS:
            if column not in fields:
                continue
            updates.append(f"{column} = ?")
            values.append(fields[column])

        if not updates:
            if self.find_active_by_id(user_id) is None:
                raise NotFoundError()
            return

        values.append(user_id)
        query = f"UPDATE users SET {', '.join(updates)} WHERE id = ? AND deleted_at IS NULL"

        with self._connect() as conn:
            try:
                cursor = conn.execute(query, values)
            except sqlite3.IntegrityError as exc:
                field = _duplicate_field(exc)
                if field is None:
                    raise
                raise DuplicateKeyError(field) from exc
            if cursor.rowcount == 0:
                raise NotFoundError()

    def soft_delete_user(self, user_id: int) -> datetime:
        """Mark an active user as deleted and return the deletion timestamp."""

        deleted_at = _current_timestamp()
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE users SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (_serialize_datetime(deleted_at), user_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError()
        return deleted_at

    # ------------------------------------------------------------------
    # Login log
    # ------------------------------------------------------------------
    def record_login_attempt(self, user_id: int, ip_address: Optional[str]) -> LoginAttempt:
        created_at = _current_timestamp()
        with self._connect() as conn:
            cursor = conn.execute(
                "INSERT INTO login_logs (user_id, ip_address, created_at) VALUES (?, ?, ?)",
                (user_id, ip_address, _serialize_datetime(created_at)),
            )
            attempt_id = cursor.lastrowid

        return LoginAttempt(
            id=int(attempt_id),
            user_id=user_id,
            ip_address=ip_address,
            created_at=created_at,
        )

    def list_login_attempts(self, user_id: int, limit: Optional[int] = None) -> List[LoginAttempt]:
        query = "SELECT * FROM login_logs WHERE user_id = ? ORDER BY id DESC"
        params: List[object] = [user_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_login_attempt(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _is_taken(self, column: str, value: str, exclude_id: Optional[int]) -> bool:
        query = f"SELECT 1 FROM users WHERE {column} = ? AND deleted_at IS NULL"
        params: List[object] = [value]
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        with self._connect() as conn:
            row = conn.execute(query + " LIMIT 1", params).fetchone()
        return row is not None

    def _row_to_user(self, row: sqlite3.Row) -> User:
        deleted_at = row["deleted_at"]
        return User(
            id=int(row["id"]),
            login=str(row["login"]),
            email=str(row["email"]),
            firstname=str(row["firstname"]),
            lastname=str(row["lastname"]),
            password_hash=str(row["password_hash"]),
            created_at=_parse_datetime(str(row["created_at"])),
            deleted_at=_parse_datetime(str(deleted_at)) if deleted_at else None,
        )

    def _row_to_login_attempt(self, row: sqlite3.Row) -> LoginAttempt:
        return LoginAttempt(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            ip_address=row["ip_address"],
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
