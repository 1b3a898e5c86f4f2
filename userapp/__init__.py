"""Core of the user management application."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .service import UserService
from .sessions import SessionContext, SessionManager


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the JSON API application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "SessionContext",
    "SessionManager",
    "UserService",
    "create_app",
    "resolve_database_path",
]
