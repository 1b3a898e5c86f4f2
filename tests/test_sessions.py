from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from userapp.sessions import SessionManager


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def manager(clock: FakeClock) -> SessionManager:
    return SessionManager(clock=clock)


def test_remember_me_session_has_fixed_fourteen_day_expiry(manager: SessionManager, clock: FakeClock) -> None:
    started_at = clock.now
    session = manager.start(7, remember=True)

    assert session.remember
    assert not session.sliding
    assert session.expires_at == started_at + timedelta(days=14)

    clock.advance(days=13)
    resolved = manager.resolve(session.token)
    assert resolved is not None
    assert resolved.expires_at == started_at + timedelta(days=14)

    clock.advance(days=1)
    assert manager.resolve(session.token) is None


def test_default_session_slides_by_twenty_minutes(manager: SessionManager, clock: FakeClock) -> None:
    session = manager.start(7)

    assert not session.remember
    assert session.sliding
    assert session.expires_at == clock.now + timedelta(minutes=20)

    for _ in range(5):
        clock.advance(minutes=15)
        resolved = manager.resolve(session.token)
        assert resolved is not None
        assert resolved.expires_at == clock.now + timedelta(minutes=20)

    clock.advance(minutes=20)
    assert manager.resolve(session.token) is None
    assert not manager.is_authenticated(session.token)


def test_current_user_and_end(manager: SessionManager) -> None:
    session = manager.start(42)

    assert manager.is_authenticated(session.token)
    assert manager.current_user_id(session.token) == 42

    manager.end(session.token)
    assert manager.current_user_id(session.token) is None
    assert not manager.is_authenticated(None)
    manager.end(None)


def test_tokens_are_unique(manager: SessionManager) -> None:
    tokens = {manager.start(1).token for _ in range(50)}
    assert len(tokens) == 50


def test_end_all_for_user_and_purge(manager: SessionManager, clock: FakeClock) -> None:
    first = manager.start(1)
    second = manager.start(1, remember=True)
    other = manager.start(2)

    assert manager.end_all_for_user(1) == 2
    assert manager.resolve(first.token) is None
    assert manager.resolve(second.token) is None
    assert manager.current_user_id(other.token) == 2

    clock.advance(minutes=21)
    assert manager.purge_expired() == 1
    assert len(manager) == 0


def test_starting_a_session_sweeps_expired_ones(manager: SessionManager, clock: FakeClock) -> None:
    for user_id in range(500):
        manager.start(user_id, remember=user_id % 2 == 0)
    assert len(manager) == 500

    clock.advance(days=30)
    fresh = manager.start(999)

    assert len(manager) == 1
    assert manager.current_user_id(fresh.token) == 999


def test_starting_a_session_keeps_live_ones(manager: SessionManager, clock: FakeClock) -> None:
    remembered = manager.start(1, remember=True)
    manager.start(2)

    clock.advance(minutes=21)
    manager.start(3)

    assert len(manager) == 2
    assert manager.current_user_id(remembered.token) == 1


def test_cookie_max_age_only_for_remember_me(manager: SessionManager) -> None:
    assert manager.cookie_max_age(manager.start(1, remember=True)) == 14 * 24 * 60 * 60
    assert manager.cookie_max_age(manager.start(1)) is None


def test_custom_lifetimes(clock: FakeClock) -> None:
    manager = SessionManager(ttl=timedelta(minutes=5), remember_ttl=timedelta(days=1), clock=clock)
    assert manager.start(1).expires_at == clock.now + timedelta(minutes=5)
    assert manager.start(1, remember=True).expires_at == clock.now + timedelta(days=1)
