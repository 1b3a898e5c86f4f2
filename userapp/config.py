"""Configuration management for the user management service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .database import resolve_database_path
from .passwords import DEFAULT_BCRYPT_ROUNDS
from .sessions import DEFAULT_SESSION_TTL, REMEMBER_SESSION_TTL

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}
_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def _parse_flag(name: str, value: object) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")


def _parse_positive_int(name: str, value: object) -> int:
    try:
        number = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from exc
    if number <= 0:
        raise ValueError(f"{name} must be a positive integer")
    return number


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the service and the CLI."""

    database_path: Path
    session_ttl: timedelta = DEFAULT_SESSION_TTL
    remember_ttl: timedelta = REMEMBER_SESSION_TTL
    bcrypt_rounds: int = DEFAULT_BCRYPT_ROUNDS
    secure_cookies: bool = False
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data (e.g. a YAML file)."""

        raw_db = data.get("database_path")
        if raw_db:
            candidate = Path(str(raw_db)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        settings = Settings(database_path=database_path)
        if data.get("session_minutes") is not None:
            minutes = _parse_positive_int("session_minutes", data["session_minutes"])
            settings = replace(settings, session_ttl=timedelta(minutes=minutes))
        if data.get("remember_days") is not None:
            days = _parse_positive_int("remember_days", data["remember_days"])
            settings = replace(settings, remember_ttl=timedelta(days=days))
        if data.get("bcrypt_rounds") is not None:
            settings = replace(
                settings, bcrypt_rounds=_parse_positive_int("bcrypt_rounds", data["bcrypt_rounds"])
            )
        if data.get("secure_cookies") is not None:
            settings = replace(
                settings, secure_cookies=_parse_flag("secure_cookies", data["secure_cookies"])
            )
        if data.get("log_level") is not None:
            settings = replace(settings, log_level=_parse_log_level(data["log_level"]))
        return settings


def _parse_log_level(value: object) -> str:
    level = str(value).strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level: {value!r}")
    return level


DEFAULT_CONFIG_PATH = (Path(__file__).resolve().parent.parent / "config" / "userapp.yaml").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the YAML configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return DEFAULT_CONFIG_PATH


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, object]:
    mapping = {
        "USERAPP_DB_PATH": "database_path",
        "USERAPP_SESSION_MINUTES": "session_minutes",
        "USERAPP_REMEMBER_DAYS": "remember_days",
        "USERAPP_BCRYPT_ROUNDS": "bcrypt_rounds",
        "USERAPP_SESSION_SECURE": "secure_cookies",
        "USERAPP_LOG_LEVEL": "log_level",
    }
    overrides: Dict[str, object] = {}
    for env_name, key in mapping.items():
        value = environ.get(env_name)
        if value is not None and value.strip():
            overrides[key] = value
    return overrides


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from YAML with environment overrides on top.

    Only the implicit ``config/userapp.yaml`` may be missing. A path passed in
    or named by ``USERAPP_CONFIG`` must exist, otherwise
    :class:`FileNotFoundError` is raised.
    """

    env = os.environ if environ is None else environ
    explicit = config_path is not None or bool(env.get("USERAPP_CONFIG"))
    path = config_path or resolve_config_path(env.get("USERAPP_CONFIG"))

    raw: Dict[str, object] = {}
    base_path: Path | None = None
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        raw.update(loaded)
        base_path = path.parent
    elif explicit:
        raise FileNotFoundError(f"Configuration file {path} does not exist")

    overrides = _env_overrides(env)
    if "database_path" in overrides:
        overrides["database_path"] = str(resolve_database_path(str(overrides["database_path"])))
    raw.update(overrides)
    return Settings.from_dict(raw, base_path=base_path)


__all__ = ["DEFAULT_CONFIG_PATH", "Settings", "load_settings", "resolve_config_path"]
