from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional

from tomo.errors import ConfigError

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"
DEFAULT_SESSION_TTL_SECONDS = 24 * 3600


@dataclass(frozen=True)
class AuthConfig:
    # Session token signing
    jwt_secret: Optional[str]
    session_ttl_seconds: int

    # Password hashing
    bcrypt_rounds: int

    # Google identity exchange (optional)
    google_client_id: Optional[str]
    google_discovery_url: str
    provider_timeout_seconds: float

    # Browser access
    cors_allowed_origins: List[str]

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id)

    def require_jwt_secret(self) -> str:
        """Return the signing secret or fail startup."""
        if not self.jwt_secret:
            raise ConfigError("JWT_SECRET environment variable not set")
        return self.jwt_secret


def _parse_csv(value: str) -> List[str]:
    items = [x.strip() for x in (value or "").split(",")]
    return [x for x in items if x]


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    JWT_SECRET is required to serve requests; Google exchange is enabled when
    GOOGLE_CLIENT_ID is set.
    """
    ttl = _env_int("AUTH_SESSION_TTL_SECONDS", DEFAULT_SESSION_TTL_SECONDS)
    if ttl <= 0:
        # Tokens must outlive their issuance.
        ttl = DEFAULT_SESSION_TTL_SECONDS
    rounds = min(max(_env_int("AUTH_BCRYPT_ROUNDS", 12), 4), 31)

    timeout_raw = (os.getenv("AUTH_PROVIDER_TIMEOUT_SECONDS", "") or "10").strip() or "10"
    try:
        timeout = float(timeout_raw)
    except ValueError:
        timeout = 10.0
    if timeout <= 0:
        timeout = 10.0

    return AuthConfig(
        jwt_secret=(os.getenv("JWT_SECRET", "") or "").strip() or None,
        session_ttl_seconds=ttl,
        bcrypt_rounds=rounds,
        google_client_id=(os.getenv("GOOGLE_CLIENT_ID", "") or "").strip() or None,
        google_discovery_url=(os.getenv("GOOGLE_DISCOVERY_URL", "") or "").strip() or GOOGLE_DISCOVERY_URL,
        provider_timeout_seconds=timeout,
        cors_allowed_origins=_parse_csv(os.getenv("CORS_ALLOWED_ORIGINS", "")),
    )
