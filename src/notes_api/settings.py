from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DEV_SESSION_KEY = "development-session-key-change-me"


@dataclass(frozen=True)
class Settings:
    """
    Application settings loaded from environment variables.

    Env vars:
    - ENV: 'production' (default) or 'development'
    - PERSISTENCE_BACKEND: 'memory' (default) or 'sqlite'
    - SQLITE_DB_PATH: path to sqlite db file. Default './data/notes.db'
    - SESSION_KEY: secret used to sign the session cookie (required in production)
    - SESSION_COOKIE: session cookie name. Default 'auth'
    - SESSION_HTTPS_ONLY: 'true' to mark the session cookie Secure (default: false)
    - NOTES_TIMEZONE: IANA zone used for day boundaries. Default 'UTC'
    - STORE_TIMEOUT_SECONDS: per-call store deadline. Default 5
    - LOGIN_URL: identity provider authorize URL; '' sends users straight to /callback
    - LOG_LEVEL: default 'INFO'
    - LOG_FORMAT: 'json' (default) or 'console'
    """

    environment: str
    persistence_backend: str
    sqlite_db_path: str
    session_key: str
    session_cookie: str
    session_https_only: bool
    timezone: str
    store_timeout: float
    login_url: str
    log_level: str
    log_format: str

    @property
    def development(self) -> bool:
        return self.environment == "development"

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name, default)
    if value is None or value == "":
        return default
    return value


def _parse_bool(value: str, default: bool = False) -> bool:
    v = value.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_float(value: str, default: float) -> float:
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if math.isfinite(parsed) else default


def _parse_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError):
        return "UTC"
    return value


# PUBLIC_INTERFACE
def get_settings(session_key: Optional[str] = None) -> Settings:
    """
    Return application settings loaded from environment variables.

    Raises RuntimeError in production when no SESSION_KEY is configured.
    """
    environment = _get_env("ENV", "production").strip().lower()
    if environment not in {"production", "development"}:
        environment = "production"

    backend = _get_env("PERSISTENCE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlite"}:
        # Fallback to memory if unsupported
        backend = "memory"

    key = session_key or os.getenv("SESSION_KEY") or ""
    if not key:
        if environment == "production":
            raise RuntimeError("SESSION_KEY must be set in production")
        key = _DEV_SESSION_KEY

    log_format = _get_env("LOG_FORMAT", "json").strip().lower()
    if log_format not in {"json", "console"}:
        log_format = "json"

    return Settings(
        environment=environment,
        persistence_backend=backend,
        sqlite_db_path=_get_env("SQLITE_DB_PATH", "./data/notes.db").strip(),
        session_key=key,
        session_cookie=_get_env("SESSION_COOKIE", "auth").strip(),
        session_https_only=_parse_bool(_get_env("SESSION_HTTPS_ONLY", "false"), False),
        timezone=_parse_timezone(_get_env("NOTES_TIMEZONE", "UTC").strip()),
        store_timeout=_parse_float(_get_env("STORE_TIMEOUT_SECONDS", "5"), 5.0),
        login_url=os.getenv("LOGIN_URL", "").strip(),
        log_level=_get_env("LOG_LEVEL", "INFO").strip().upper(),
        log_format=log_format,
    )
