"""User service: the single entry point used by the presentation layer."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional

from .database import Database
from .errors import (
    AuthError,
    DuplicateKeyError,
    EmailTakenError,
    LoginTakenError,
    MissingFieldError,
    NotFoundError,
)
from .models import LoginAttempt, User, UserView
from .passwords import PasswordHasher, is_valid, require_valid_email, require_valid_password
from .security import Authenticator
from .sessions import Session, SessionContext, SessionManager

logger = logging.getLogger("userapp.service")

REGISTRATION_FIELDS = ("login", "firstname", "lastname", "email", "password")
PROFILE_FIELDS = ("login", "email", "firstname", "lastname")


def _conflict_for(exc: DuplicateKeyError) -> Exception:
    if exc.field == "email":
        return EmailTakenError()
    return LoginTakenError()


def _clean(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


class UserService:
    """Login, logout, registration and account maintenance."""

    def __init__(
        self,
        database: Database,
        sessions: SessionManager,
        *,
        hasher: Optional[PasswordHasher] = None,
        authenticator: Optional[Authenticator] = None,
    ) -> None:
        self._database = database
        self._sessions = sessions
        self._hasher = hasher or PasswordHasher()
        self._authenticator = authenticator or Authenticator(database, self._hasher)

    @property
    def database(self) -> Database:
        return self._database

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def hasher(self) -> PasswordHasher:
        return self._hasher

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def login(
        self,
        context: SessionContext,
        login: str,
        password: str,
        remember: bool = False,
    ) -> Session:
        """Authenticate and bind a fresh session to ``context``.

        Raises the specific :class:`AuthError` subclass on failure so the
        caller can tell a deleted account from a wrong password.
        """

        try:
            identity = self._authenticator.authenticate(login, password)
        except AuthError as exc:
            logger.warning("Failed login attempt for %s (%s)", login, exc.code)
            raise

        if context.token:
            self._sessions.end(context.token)

        session = self._sessions.start(identity.id, remember=remember)
        self._database.record_login_attempt(identity.id, context.ip_address)
        context.token = session.token
        logger.info(
            "User %s logged in from %s (remember=%s)",
            identity.id,
            context.ip_address or "unknown address",
            remember,
        )
        return session

    def logout(self, context: SessionContext) -> None:
        user_id = self._sessions.current_user_id(context.token)
        self._sessions.end(context.token)
        context.token = None
        if user_id is not None:
            logger.info("User %s logged out", user_id)

    def current_user_id(self, context: SessionContext) -> Optional[int]:
        session = self._sessions.resolve(context.token)
        if session is None:
            return None
        if self._database.find_active_by_id(session.user_id) is None:
            self._sessions.end(session.token)
            context.token = None
            return None
        return session.user_id

    def is_authenticated(self, context: SessionContext) -> bool:
        return self.current_user_id(context) is not None

    # ------------------------------------------------------------------
    # Account management
    # ------------------------------------------------------------------
    def register(self, data: Mapping[str, object]) -> int:
        """Create a new account and return its id."""

        values: Dict[str, str] = {}
        for field in REGISTRATION_FIELDS:
            value = _clean(data.get(field))
            if value is None:
                raise MissingFieldError(field)
            values[field] = value

        require_valid_email(values["email"])
        require_valid_password(values["password"])

        if self._database.is_login_taken(values["login"]):
            raise LoginTakenError()
        if self._database.is_email_taken(values["email"]):
            raise EmailTakenError()

        password_hash = self._hasher.hash(values["password"])
        try:
            user_id = self._database.insert_user(
                login=values["login"],
                firstname=values["firstname"],
                lastname=values["lastname"],
                email=values["email"],
                password_hash=password_hash,
            )
        except DuplicateKeyError as exc:
            raise _conflict_for(exc) from exc

        logger.info("Registered user %s (%s)", user_id, values["login"])
        return user_id

    def update(self, user_id: int, data: Mapping[str, object]) -> List[str]:
        """Write the fields of ``data`` that differ from the stored user.

        Returns the names of the updated fields; an empty list means nothing
        changed and nothing was written. ``None`` or blank values count as not
        supplied.
        """

        user = self.get_user(user_id)

        changes: Dict[str, str] = {}
        for field in PROFILE_FIELDS:
            value = _clean(data.get(field))
            if value is not None and value != getattr(user, field):
                changes[field] = value

        if "login" in changes and self._database.is_login_taken(changes["login"], exclude_id=user.id):
            raise LoginTakenError()
        if "email" in changes:
            require_valid_email(changes["email"])
            if self._database.is_email_taken(changes["email"], exclude_id=user.id):
                raise EmailTakenError()

        password = _clean(data.get("password"))
        if password is not None and not self._hasher.verify(password, user.password_hash):
            require_valid_password(password)
            changes["password_hash"] = self._hasher.hash(password)

        if not changes:
            logger.debug("No changes for user %s", user.id)
            return []

        try:
            self._database.update_user(user.id, **changes)
        except DuplicateKeyError as exc:
            raise _conflict_for(exc) from exc

        updated = ["password" if field == "password_hash" else field for field in changes]
        logger.info("Updated user %s: %s", user.id, ", ".join(updated))
        return updated

    def delete(self, user_id: int) -> None:
        self._database.soft_delete_user(user_id)
        ended = self._sessions.end_all_for_user(user_id)
        logger.info("Deleted user %s (%d session(s) ended)", user_id, ended)

    # ------------------------------------------------------------------
    # Read accessors and validation queries
    # ------------------------------------------------------------------
    def get_user(self, user_id: int) -> User:
        user = self._database.find_active_by_id(user_id)
        if user is None:
            raise NotFoundError()
        return user

    def list_active(self) -> List[UserView]:
        return [user.to_view() for user in self._database.list_active()]

    def login_history(self, user_id: int, limit: Optional[int] = None) -> List[LoginAttempt]:
        self.get_user(user_id)
        return self._database.list_login_attempts(user_id, limit=limit)

    def is_password_valid(self, password: str) -> bool:
        return is_valid(password)

    def is_login_taken(self, login: str, exclude_id: Optional[int] = None) -> bool:
        return self._database.is_login_taken(login, exclude_id)

    def is_email_taken(self, email: str, exclude_id: Optional[int] = None) -> bool:
        return self._database.is_email_taken(email, exclude_id)


__all__ = ["PROFILE_FIELDS", "REGISTRATION_FIELDS", "UserService"]
