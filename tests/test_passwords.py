from __future__ import annotations

import pytest

from userapp.errors import InvalidEmailError, WeakPasswordError
from userapp.passwords import (
    PasswordHasher,
    is_valid,
    is_valid_email,
    require_valid_email,
    require_valid_password,
)


@pytest.mark.parametrize(
    "password",
    ["Abcdef12", "aB3aaaaa", "Sup3rSecurePwd!", "ZZZZZZz9", "Aa1" + "x" * 500],
)
def test_accepts_passwords_meeting_policy(password: str) -> None:
    assert is_valid(password)


@pytest.mark.parametrize(
    "password",
    [
        "abcdefgh",  # no uppercase, no digit
        "Ab1",  # too short
        "Abcdefg",  # too short, no digit
        "abcdef12",  # no uppercase
        "ABCDEF12",  # no lowercase
        "Abcdefgh",  # no digit
        "Abcde12",  # seven characters
        "",
    ],
)
def test_rejects_passwords_violating_policy(password: str) -> None:
    assert not is_valid(password)


def test_require_valid_password_raises_typed_error() -> None:
    with pytest.raises(WeakPasswordError) as excinfo:
        require_valid_password("password")
    assert excinfo.value.code == "weak_password"
    require_valid_password("Passw0rdOK")


@pytest.mark.parametrize("email", ["user@example.com", "first.last@mail.example.org"])
def test_accepts_well_formed_email(email: str) -> None:
    assert is_valid_email(email)
    require_valid_email(email)


@pytest.mark.parametrize("email", ["", "user", "user@", "user@example", "a b@example.com", "a@@b.com"])
def test_rejects_malformed_email(email: str) -> None:
    assert not is_valid_email(email)
    with pytest.raises(InvalidEmailError):
        require_valid_email(email)


def test_hash_is_salted_and_verifiable() -> None:
    hasher = PasswordHasher(rounds=4)
    first = hasher.hash("Abcdef12")
    second = hasher.hash("Abcdef12")

    assert first != "Abcdef12"
    assert first != second
    assert hasher.verify("Abcdef12", first)
    assert hasher.verify("Abcdef12", second)
    assert not hasher.verify("Abcdef13", first)


def test_verify_rejects_unknown_hash_formats() -> None:
    hasher = PasswordHasher(rounds=4)
    assert not hasher.verify("Abcdef12", "not-a-hash")
    assert not hasher.verify("Abcdef12", "")
    assert not hasher.verify("", hasher.hash("Abcdef12"))


def test_hash_refuses_empty_password() -> None:
    with pytest.raises(ValueError):
        PasswordHasher(rounds=4).hash("")
