import pytest

from notes_api.main import create_app
from notes_api.settings import get_settings

from conftest import make_settings

ENV_VARS = [
    "ENV",
    "PERSISTENCE_BACKEND",
    "SQLITE_DB_PATH",
    "SESSION_KEY",
    "SESSION_COOKIE",
    "SESSION_HTTPS_ONLY",
    "NOTES_TIMEZONE",
    "STORE_TIMEOUT_SECONDS",
    "LOGIN_URL",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_production_requires_session_key():
    with pytest.raises(RuntimeError):
        get_settings()


def test_development_defaults(monkeypatch):
    monkeypatch.setenv("ENV", "development")
    s = get_settings()
    assert s.development
    assert s.persistence_backend == "memory"
    assert s.session_cookie == "auth"
    assert s.timezone == "UTC"
    assert s.store_timeout == 5.0
    assert s.session_key


def test_values_from_env(monkeypatch):
    monkeypatch.setenv("SESSION_KEY", "secret")
    monkeypatch.setenv("PERSISTENCE_BACKEND", "SQLite")
    monkeypatch.setenv("SESSION_HTTPS_ONLY", "yes")
    monkeypatch.setenv("NOTES_TIMEZONE", "Australia/Sydney")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("LOG_FORMAT", "console")
    s = get_settings()
    assert s.environment == "production"
    assert s.persistence_backend == "sqlite"
    assert s.session_https_only is True
    assert s.timezone == "Australia/Sydney"
    assert s.store_timeout == 2.5
    assert s.log_format == "console"


def test_invalid_values_fall_back(monkeypatch):
    monkeypatch.setenv("SESSION_KEY", "secret")
    monkeypatch.setenv("ENV", "staging")
    monkeypatch.setenv("PERSISTENCE_BACKEND", "redis")
    monkeypatch.setenv("NOTES_TIMEZONE", "Mars/Olympus")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", "soon")
    monkeypatch.setenv("LOG_FORMAT", "xml")
    s = get_settings()
    assert s.environment == "production"
    assert s.persistence_backend == "memory"
    assert s.timezone == "UTC"
    assert s.store_timeout == 5.0
    assert s.log_format == "json"


@pytest.mark.parametrize("raw", ["nan", "inf", "-inf"])
def test_non_finite_store_timeout_falls_back(monkeypatch, raw):
    monkeypatch.setenv("SESSION_KEY", "secret")
    monkeypatch.setenv("STORE_TIMEOUT_SECONDS", raw)
    assert get_settings().store_timeout == 5.0


def test_production_app_needs_identity_provider():
    with pytest.raises(RuntimeError):
        create_app(make_settings(environment="production"), configure_logs=False)
