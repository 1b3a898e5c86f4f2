"""In-memory session handling with remember-me and sliding expiry."""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

DEFAULT_SESSION_TTL = timedelta(minutes=20)
REMEMBER_SESSION_TTL = timedelta(days=14)


@dataclass(frozen=True)
class Session:
    """Snapshot of a live session."""

    token: str
    user_id: int
    expires_at: datetime
    remember: bool
    sliding: bool


@dataclass
class SessionContext:
    """Per-request session state handed to the user service.

    The presentation layer builds one of these for every inbound request from
    the session cookie and the client address, and reads ``token`` back after
    login/logout to update the cookie.
    """

    token: Optional[str] = None
    ip_address: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    """Generate, validate, and revoke login sessions.

    Remember-me sessions live for ``remember_ttl`` from login and never
    slide. Default sessions live for ``ttl`` and are extended by ``ttl`` on
    every successful :meth:`resolve`.
    """

    def __init__(
        self,
        *,
        ttl: timedelta = DEFAULT_SESSION_TTL,
        remember_ttl: timedelta = REMEMBER_SESSION_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._ttl = ttl
        self._remember_ttl = remember_ttl
        self._clock = clock or _utcnow
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @property
    def remember_ttl(self) -> timedelta:
        return self._remember_ttl

    def cookie_max_age(self, session: Session) -> Optional[int]:
        """Cookie lifetime for ``session``; ``None`` means a browser-session cookie."""

        if session.remember:
            return int(self._remember_ttl.total_seconds())
        return None

    def start(self, user_id: int, remember: bool = False) -> Session:
        token = secrets.token_urlsafe(32)
        now = self._clock()
        if remember:
            session = Session(
                token=token,
                user_id=user_id,
                expires_at=now + self._remember_ttl,
                remember=True,
                sliding=False,
            )
        else:
            session = Session(
                token=token,
                user_id=user_id,
                expires_at=now + self._ttl,
                remember=False,
                sliding=True,
            )
        with self._lock:
            # Abandoned sessions are never resolved again, so sweep on login.
            self._drop_expired(now)
            self._sessions[token] = session
        return session

    def resolve(self, token: Optional[str]) -> Optional[Session]:
        if not token:
            return None
        now = self._clock()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.expires_at <= now:
                self._sessions.pop(token, None)
                return None
            if session.sliding:
                session = replace(session, expires_at=now + self._ttl)
                self._sessions[token] = session
            return session

    def is_authenticated(self, token: Optional[str]) -> bool:
        return self.resolve(token) is not None

    def current_user_id(self, token: Optional[str]) -> Optional[int]:
        session = self.resolve(token)
        if session is None:
            return None
        return session.user_id

    def end(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            self._sessions.pop(token, None)

    def end_all_for_user(self, user_id: int) -> int:
        with self._lock:
            tokens = [token for token, session in self._sessions.items() if session.user_id == user_id]
            for token in tokens:
                del self._sessions[token]
        return len(tokens)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._drop_expired(now)

    def _drop_expired(self, now: datetime) -> int:
        # Caller holds the lock.
        expired = [token for token, session in self._sessions.items() if session.expires_at <= now]
        for token in expired:
            del self._sessions[token]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


__all__ = [
    "DEFAULT_SESSION_TTL",
    "REMEMBER_SESSION_TTL",
    "Session",
    "SessionContext",
    "SessionManager",
]
