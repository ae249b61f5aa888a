"""
Pytest config.

Tests import the local `tomo/` package straight from the repo root, installed
or not, so the root is pinned on sys.path during collection.

Shared fixtures build the app on top of the in-process store and a temporary
media directory, and provide a throwaway RSA key that stands in for Google's
signing key (served through a patched JWKS fetch, never the network).
"""

from __future__ import annotations

import sys
import time
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

import jwt  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tomo.api.app import create_app  # noqa: E402
from tomo.auth.config import GOOGLE_DISCOVERY_URL, AuthConfig, load_auth_config  # noqa: E402
from tomo.media import load_media_config  # noqa: E402
from tomo.media.local_store import LocalMediaStorage  # noqa: E402
from tomo.store.config import load_db_config  # noqa: E402
from tomo.store.memory import MemoryStore  # noqa: E402

TEST_SECRET = "test-secret-key-for-testing-purposes-only"
GOOGLE_CLIENT_ID = "tomo-test-client.apps.googleusercontent.com"
GOOGLE_ISSUER = "https://accounts.google.com"
GOOGLE_JWKS_URI = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_KID = "test-kid-1"


@pytest.fixture(autouse=True)
def _clear_config_caches():
    load_auth_config.cache_clear()
    load_db_config.cache_clear()
    load_media_config.cache_clear()
    yield
    load_auth_config.cache_clear()
    load_db_config.cache_clear()
    load_media_config.cache_clear()


@pytest.fixture
def make_config() -> Callable[..., AuthConfig]:
    def _make(**overrides: Any) -> AuthConfig:
        values: Dict[str, Any] = {
            "jwt_secret": TEST_SECRET,
            "session_ttl_seconds": 3600,
            "bcrypt_rounds": 4,
            "google_client_id": None,
            "google_discovery_url": GOOGLE_DISCOVERY_URL,
            "provider_timeout_seconds": 2.0,
            "cors_allowed_origins": [],
        }
        values.update(overrides)
        return AuthConfig(**values)

    return _make


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def media(tmp_path) -> LocalMediaStorage:
    return LocalMediaStorage(base_dir=str(tmp_path / "media"))


@pytest.fixture
def app(make_config, store, media):
    return create_app(config=make_config(google_client_id=GOOGLE_CLIENT_ID), store=store, media=media)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client) -> Callable[..., Tuple[str, Dict[str, Any]]]:
    """Register a user through the API and return (token, user)."""

    def _register(email: str = "a@x.com", username: str = "alice", password: str = "secret123"):
        r = client.post("/register", json={"email": email, "username": username, "password": password})
        assert r.status_code == 201, r.text
        body = r.json()
        return body["token"], body["user"]

    return _register


@pytest.fixture
def auth() -> Callable[[str], Dict[str, str]]:
    return lambda token: {"Authorization": f"Bearer {token}"}


# ---- Google identity provider stand-in ----


@pytest.fixture(scope="session")
def rsa_key():
    from cryptography.hazmat.primitives.asymmetric import rsa

    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_jwk(private_key, kid: str) -> Dict[str, Any]:
    jwk = jwt.algorithms.RSAAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
    jwk.update({"kid": kid, "alg": "RS256", "use": "sig"})
    return jwk


@pytest.fixture
def google_idp(monkeypatch, rsa_key) -> Callable[..., str]:
    """
    Serve discovery + JWKS for the test key and return a Google ID token minter.

    The minter's keyword arguments override individual claims; `key` and `kid`
    change how the token is signed.
    """
    monkeypatch.setattr(
        "tomo.auth.google._get_discovery",
        lambda url, timeout: {"issuer": GOOGLE_ISSUER, "jwks_uri": GOOGLE_JWKS_URI},
    )
    monkeypatch.setattr(
        "tomo.auth.google._get_jwks",
        lambda uri, timeout, refresh=False: {"keys": [public_jwk(rsa_key, GOOGLE_KID)]},
    )

    def _mint(
        sub: str = "google-sub-123",
        email: str = "g@x.com",
        email_verified: Any = True,
        *,
        key=None,
        kid: str = GOOGLE_KID,
        **claims: Any,
    ) -> str:
        now = int(time.time())
        payload: Dict[str, Any] = {
            "iss": GOOGLE_ISSUER,
            "aud": GOOGLE_CLIENT_ID,
            "sub": sub,
            "email": email,
            "email_verified": email_verified,
            "iat": now,
            "exp": now + 3600,
        }
        payload.update(claims)
        return jwt.encode(payload, key or rsa_key, algorithm="RS256", headers={"kid": kid})

    return _mint


@pytest.fixture
def google_verifier(google_idp):
    from tomo.auth.google import GoogleTokenVerifier

    return GoogleTokenVerifier(GOOGLE_CLIENT_ID, discovery_url=GOOGLE_DISCOVERY_URL, timeout=2.0)


@pytest.fixture
def jwk_for() -> Callable[..., Dict[str, Any]]:
    return public_jwk
