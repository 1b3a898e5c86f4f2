"""FastAPI application exposing the user service over JSON."""
from __future__ import annotations

import logging
import os
from datetime import datetime
from operator import attrgetter
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .config import Settings, load_settings
from .database import Database
from .errors import (
    AlreadyLoggedInError,
    AuthError,
    ConflictError,
    NotFoundError,
    NotLoggedInError,
    UserAppError,
    ValidationError,
)
from .models import LoginAttempt, UserView
from .passwords import PasswordHasher
from .service import UserService
from .sessions import Session, SessionContext, SessionManager

logger = logging.getLogger("userapp.api")

SESSION_COOKIE_NAME = "userapp_session"

_SORT_FIELDS = ("id", "login", "email", "firstname", "lastname")

_ERROR_STATUS = (
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (NotLoggedInError, status.HTTP_401_UNAUTHORIZED),
    (AlreadyLoggedInError, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (ConflictError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
)


class LoginRequest(BaseModel):
    login: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    remember: bool = False


class LoginResponse(BaseModel):
    user_id: int
    expires_at: datetime
    remember: bool


class SessionResponse(BaseModel):
    authenticated: bool
    user_id: Optional[int] = None


class RegisterRequest(BaseModel):
    login: str = Field(..., max_length=255)
    firstname: str = Field(..., max_length=255)
    lastname: str = Field(..., max_length=255)
    email: str = Field(..., max_length=255)
    password: str


class RegisterResponse(BaseModel):
    id: int


class UpdateUserRequest(BaseModel):
    login: Optional[str] = Field(default=None, max_length=255)
    firstname: Optional[str] = Field(default=None, max_length=255)
    lastname: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None


class UpdateUserResponse(BaseModel):
    updated: List[str]
    message: str


class UserResponse(BaseModel):
    id: int
    login: str
    email: str
    firstname: str
    lastname: str


class LoginAttemptResponse(BaseModel):
    ip_address: Optional[str]
    created_at: datetime


class MessageResponse(BaseModel):
    message: str


def _trusted_proxy_hosts() -> list[str] | str:
    raw = os.getenv("USERAPP_TRUSTED_PROXIES")
    if not raw:
        return "127.0.0.1"
    hosts = [item.strip() for item in raw.split(",") if item.strip()]
    return hosts or "127.0.0.1"


def _status_for(exc: UserAppError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _view_to_response(view: UserView) -> UserResponse:
    return UserResponse(
        id=view.id,
        login=view.login,
        email=view.email,
        firstname=view.firstname,
        lastname=view.lastname,
    )


def _attempt_to_response(attempt: LoginAttempt) -> LoginAttemptResponse:
    return LoginAttemptResponse(ip_address=attempt.ip_address, created_at=attempt.created_at)


def _matches(view: UserView, filters: Dict[str, str]) -> bool:
    for field, needle in filters.items():
        haystack = str(getattr(view, field))
        if needle.lower() not in haystack.lower():
            return False
    return True


def build_service(settings: Settings, *, database: Database | None = None) -> UserService:
    """Wire the user service from settings."""

    if database is None:
        database = Database(settings.database_path)
        database.initialize()
    sessions = SessionManager(ttl=settings.session_ttl, remember_ttl=settings.remember_ttl)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    return UserService(database, sessions, hasher=hasher)


def create_app(
    *,
    service: UserService | None = None,
    database: Database | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create the JSON API application."""

    if settings is None:
        settings = load_settings()
    if service is None:
        service = build_service(settings, database=database)

    app = FastAPI(
        title="User Management",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=_trusted_proxy_hosts())
    app.state.service = service
    app.state.settings = settings

    @app.exception_handler(UserAppError)
    async def _handle_user_error(request: Request, exc: UserAppError) -> JSONResponse:
        return JSONResponse(
            status_code=_status_for(exc),
            content={"code": exc.code, "detail": exc.message},
        )

    def get_context(request: Request) -> SessionContext:
        client = request.client
        return SessionContext(
            token=request.cookies.get(SESSION_COOKIE_NAME),
            ip_address=client.host if client else None,
        )

    def require_user(context: SessionContext = Depends(get_context)) -> int:
        user_id = service.current_user_id(context)
        if user_id is None:
            raise NotLoggedInError()
        return user_id

    def require_anonymous(context: SessionContext = Depends(get_context)) -> None:
        if service.current_user_id(context) is not None:
            raise AlreadyLoggedInError()

    def _issue_session_cookie(response: Response, session: Session) -> None:
        response.set_cookie(
            SESSION_COOKIE_NAME,
            session.token,
            max_age=service.sessions.cookie_max_age(session),
            secure=settings.secure_cookies,
            httponly=True,
            samesite="lax",
            path="/",
        )

    def _clear_session_cookie(response: Response) -> None:
        response.delete_cookie(SESSION_COOKIE_NAME, path="/")

    @app.get("/healthz")
    def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/login", response_model=LoginResponse)
    def login(
        payload: LoginRequest,
        response: Response,
        context: SessionContext = Depends(get_context),
    ) -> LoginResponse:
        session = service.login(context, payload.login, payload.password, payload.remember)
        _issue_session_cookie(response, session)
        return LoginResponse(
            user_id=session.user_id,
            expires_at=session.expires_at,
            remember=session.remember,
        )

    @app.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
    def logout(context: SessionContext = Depends(get_context)) -> Response:
        service.logout(context)
        response = Response(status_code=status.HTTP_204_NO_CONTENT)
        _clear_session_cookie(response)
        return response

    @app.get("/session", response_model=SessionResponse)
    def session_status(context: SessionContext = Depends(get_context)) -> SessionResponse:
        user_id = service.current_user_id(context)
        return SessionResponse(authenticated=user_id is not None, user_id=user_id)

    @app.post("/users", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
    def register(
        payload: RegisterRequest,
        _: None = Depends(require_anonymous),
    ) -> RegisterResponse:
        user_id = service.register(payload.model_dump())
        return RegisterResponse(id=user_id)

    @app.get("/users", response_model=List[UserResponse])
    def list_users(
        request: Request,
        sort: str = "id",
        order: str = "asc",
        _: int = Depends(require_user),
    ) -> List[UserResponse]:
        filters = {
            field: request.query_params[field]
            for field in _SORT_FIELDS
            if request.query_params.get(field)
        }
        if sort not in _SORT_FIELDS:
            raise ValidationError(f"Cannot sort users by '{sort}'.")
        if order not in ("asc", "desc"):
            raise ValidationError("Sort order must be 'asc' or 'desc'.")
        views = [view for view in service.list_active() if _matches(view, filters)]
        views.sort(key=attrgetter(sort), reverse=order == "desc")
        return [_view_to_response(view) for view in views]

    @app.get("/users/{user_id}", response_model=UserResponse)
    def get_user(user_id: int, _: int = Depends(require_user)) -> UserResponse:
        return _view_to_response(service.get_user(user_id).to_view())

    @app.patch("/users/{user_id}", response_model=UpdateUserResponse)
    def update_user(
        user_id: int,
        payload: UpdateUserRequest,
        _: int = Depends(require_user),
    ) -> UpdateUserResponse:
        updated = service.update(user_id, payload.model_dump(exclude_none=True))
        message = "User updated successfully!" if updated else "No changes made."
        return UpdateUserResponse(updated=updated, message=message)

    @app.delete("/users/{user_id}", response_model=MessageResponse)
    def delete_user(user_id: int, current_user_id: int = Depends(require_user)) -> MessageResponse:
        service.delete(user_id)
        logger.info("User %s deleted user %s", current_user_id, user_id)
        return MessageResponse(message=f"User with id {user_id} has been deleted.")

    @app.get("/users/{user_id}/logins", response_model=List[LoginAttemptResponse])
    def login_history(
        user_id: int,
        limit: Optional[int] = None,
        _: int = Depends(require_user),
    ) -> List[LoginAttemptResponse]:
        return [_attempt_to_response(attempt) for attempt in service.login_history(user_id, limit=limit)]

    return app


__all__ = ["SESSION_COOKIE_NAME", "build_service", "create_app"]
