"""Error types raised by the user management core."""
from __future__ import annotations

from typing import Optional


class UserAppError(Exception):
    """Base class for every user-facing failure.

    ``code`` is a stable machine-readable identifier, the message is safe to
    show to the person who triggered the error.
    """

    code = "unexpected_error"
    default_message = "An unexpected error occurred. Please try again later."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------
class ValidationError(UserAppError):
    code = "validation_error"
    default_message = "The submitted data is not valid."


class WeakPasswordError(ValidationError):
    code = "weak_password"
    default_message = (
        "Password must have at least 8 characters and include numbers, "
        "lowercase, and uppercase letters."
    )


class InvalidEmailError(ValidationError):
    code = "invalid_email"
    default_message = "Enter a valid e-mail address"


class MissingFieldError(ValidationError):
    code = "missing_field"

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"The '{field}' field is required.")


# ----------------------------------------------------------------------
# Conflicts
# ----------------------------------------------------------------------
class ConflictError(UserAppError):
    code = "conflict"
    default_message = "The submitted value is already in use."


class LoginTakenError(ConflictError):
    code = "login_taken"
    default_message = "Username is already taken!"


class EmailTakenError(ConflictError):
    code = "email_taken"
    default_message = "Email is already taken!"


class NotFoundError(UserAppError):
    code = "not_found"
    default_message = "User does not exist."


# ----------------------------------------------------------------------
# Authentication
# ----------------------------------------------------------------------
class AuthError(UserAppError):
    code = "auth_failed"
    default_message = "Invalid credentials. Please try again."


class UserNotFoundError(AuthError):
    code = "user_not_found"
    default_message = "User does not exist."


class DeletedUserError(AuthError):
    code = "user_deleted"
    default_message = "Your account was deleted. You can not login!"


class InvalidPasswordError(AuthError):
    code = "invalid_password"
    default_message = "The password is incorrect."


class NotLoggedInError(UserAppError):
    code = "not_logged_in"
    default_message = "You must be logged in to access this section."


class AlreadyLoggedInError(UserAppError):
    code = "already_logged_in"
    default_message = "This section is only for users that are not logged in."


class DuplicateKeyError(Exception):
    """Raised by the store when a unique column already holds the value."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"An active user with that {field} already exists")


__all__ = [
    "AlreadyLoggedInError",
    "AuthError",
    "ConflictError",
    "DeletedUserError",
    "DuplicateKeyError",
    "EmailTakenError",
    "InvalidEmailError",
    "InvalidPasswordError",
    "LoginTakenError",
    "MissingFieldError",
    "NotFoundError",
    "NotLoggedInError",
    "UserAppError",
    "UserNotFoundError",
    "ValidationError",
    "WeakPasswordError",
]
