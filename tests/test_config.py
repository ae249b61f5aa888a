from __future__ import annotations

import pytest

from tomo.auth.config import GOOGLE_DISCOVERY_URL, load_auth_config
from tomo.errors import ConfigError
from tomo.media import load_media_config
from tomo.store import get_store_from_env
from tomo.store.config import build_postgres_dsn, load_db_config
from tomo.store.memory import MemoryStore
from tomo.store.postgres import PostgresStore

_ENV = (
    "JWT_SECRET",
    "AUTH_SESSION_TTL_SECONDS",
    "AUTH_BCRYPT_ROUNDS",
    "AUTH_PROVIDER_TIMEOUT_SECONDS",
    "GOOGLE_CLIENT_ID",
    "GOOGLE_DISCOVERY_URL",
    "CORS_ALLOWED_ORIGINS",
    "POSTGRES_DSN",
    "POSTGRES_HOST",
    "POSTGRES_PORT",
    "POSTGRES_DB",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "DB_AUTO_MIGRATE",
    "DB_CONNECT_TIMEOUT_SECONDS",
    "DB_STATEMENT_TIMEOUT_MS",
    "S3_BUCKET_NAME",
    "MEDIA_PREFIX",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_auth_defaults() -> None:
    cfg = load_auth_config()
    assert cfg.jwt_secret is None
    assert cfg.session_ttl_seconds == 24 * 3600
    assert cfg.bcrypt_rounds == 12
    assert cfg.google_enabled is False
    assert cfg.google_discovery_url == GOOGLE_DISCOVERY_URL
    assert cfg.provider_timeout_seconds == 10.0
    assert cfg.cors_allowed_origins == []
    with pytest.raises(ConfigError):
        cfg.require_jwt_secret()


def test_auth_env_parsing(monkeypatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "  s3cret ")
    monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "600")
    monkeypatch.setenv("AUTH_BCRYPT_ROUNDS", "2")
    monkeypatch.setenv("AUTH_PROVIDER_TIMEOUT_SECONDS", "-1")
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "client-1")
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", "https://a.example, ,https://b.example")

    cfg = load_auth_config()
    assert cfg.require_jwt_secret() == "s3cret"
    assert cfg.session_ttl_seconds == 600
    assert cfg.bcrypt_rounds == 4
    assert cfg.provider_timeout_seconds == 10.0
    assert cfg.google_enabled is True
    assert cfg.cors_allowed_origins == ["https://a.example", "https://b.example"]


def test_bad_numbers_fall_back(monkeypatch) -> None:
    monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "soon")
    monkeypatch.setenv("DB_STATEMENT_TIMEOUT_MS", "5")
    monkeypatch.setenv("POSTGRES_PORT", "x")
    assert load_auth_config().session_ttl_seconds == 24 * 3600
    db = load_db_config()
    assert db.statement_timeout_ms == 100
    assert db.postgres_port == 5432


def test_dsn_from_parts(monkeypatch) -> None:
    monkeypatch.setenv("POSTGRES_HOST", "db")
    monkeypatch.setenv("POSTGRES_DB", "tomo")
    monkeypatch.setenv("POSTGRES_USER", "tomo")
    assert build_postgres_dsn(load_db_config()) is None

    load_db_config.cache_clear()
    monkeypatch.setenv("POSTGRES_PASSWORD", "p@ss word")
    dsn = build_postgres_dsn(load_db_config())
    assert "host=db" in dsn and "dbname=tomo" in dsn
    assert "p@ss word" in dsn


def test_store_selection(monkeypatch) -> None:
    assert isinstance(get_store_from_env(), MemoryStore)

    load_db_config.cache_clear()
    monkeypatch.setenv("POSTGRES_DSN", "postgresql://u:p@db/tomo")
    monkeypatch.setenv("DB_STATEMENT_TIMEOUT_MS", "2500")
    store = get_store_from_env()
    assert isinstance(store, PostgresStore)
    assert store._statement_timeout_ms == 2500


def test_media_config(monkeypatch) -> None:
    monkeypatch.setenv("S3_BUCKET_NAME", " bucket ")
    monkeypatch.setenv("MEDIA_PREFIX", "/media/")
    cfg = load_media_config()
    assert cfg.s3_bucket == "bucket"
    assert cfg.prefix == "media"


@pytest.mark.parametrize("raw", ["0", "-60"])
def test_non_positive_session_ttl_uses_default(monkeypatch, raw) -> None:
    monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", raw)
    assert load_auth_config().session_ttl_seconds == 24 * 3600
