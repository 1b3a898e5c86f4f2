"""Credential verification for user logins."""
from __future__ import annotations

from .database import Database
from .errors import DeletedUserError, InvalidPasswordError, UserNotFoundError
from .models import Identity
from .passwords import PasswordHasher


class Authenticator:
    """Verify a login/password pair against the user store.

    The checks run in a fixed order: the login is looked up regardless of
    deletion state, then a soft-deleted account is rejected, and only then is
    the password compared. A deleted account therefore always reports
    :class:`DeletedUserError`, whether or not the password is correct.
    """

    def __init__(self, database: Database, hasher: PasswordHasher) -> None:
        self._database = database
        self._hasher = hasher

    def authenticate(self, login: str, password: str) -> Identity:
        user = self._database.find_by_login(login)
        if user is None:
            raise UserNotFoundError()
        if not user.is_active:
            raise DeletedUserError()
        if not self._hasher.verify(password, user.password_hash):
            raise InvalidPasswordError()
        return Identity(id=user.id, user=user)


__all__ = ["Authenticator"]
