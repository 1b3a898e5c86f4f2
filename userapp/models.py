"""Domain models for user accounts and their login history."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class UserView:
    """Listing projection of a user; never carries the password hash."""

    id: int
    login: str
    email: str
    firstname: str
    lastname: str


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the users table."""

    id: int
    login: str
    email: str
    firstname: str
    lastname: str
    password_hash: str
    created_at: datetime
    deleted_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None

    def to_view(self) -> UserView:
        return UserView(
            id=self.id,
            login=self.login,
            email=self.email,
            firstname=self.firstname,
            lastname=self.lastname,
        )


@dataclass(frozen=True)
class Identity:
    """Result of a successful authentication."""

    id: int
    user: User


@dataclass(frozen=True)
class LoginAttempt:
    id: int
    user_id: int
    ip_address: Optional[str]
    created_at: datetime


__all__ = ["Identity", "LoginAttempt", "User", "UserView"]
