"""Password policy, e-mail format checks and password hashing."""
from __future__ import annotations

import re

from passlib.context import CryptContext

from .errors import InvalidEmailError, WeakPasswordError

PASSWORD_MIN_LENGTH = 8
DEFAULT_BCRYPT_ROUNDS = 12

_PASSWORD_CLASSES = (
    re.compile(r"[a-z]"),
    re.compile(r"[A-Z]"),
    re.compile(r"[0-9]"),
)
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid(password: str) -> bool:
    """Return ``True`` if the password satisfies the account password policy.

    The policy requires at least eight characters including one lowercase
    letter, one uppercase letter and one digit. There is no maximum length.
    """

    if len(password) < PASSWORD_MIN_LENGTH:
        return False
    return all(pattern.search(password) for pattern in _PASSWORD_CLASSES)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email))


def require_valid_password(password: str) -> None:
    if not is_valid(password):
        raise WeakPasswordError()


def require_valid_email(email: str) -> None:
    if not is_valid_email(email):
        raise InvalidEmailError()


class PasswordHasher:
    """Salted bcrypt hashing shared by registration, edits and login."""

    def __init__(self, *, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not password or not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            return False


__all__ = [
    "PASSWORD_MIN_LENGTH",
    "PasswordHasher",
    "is_valid",
    "is_valid_email",
    "require_valid_email",
    "require_valid_password",
]
