from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import jwt  # PyJWT
import requests

from tomo.auth.config import AuthConfig
from tomo.auth.models import ExternalIdentity
from tomo.errors import AudienceMismatch, EmailNotVerified, InvalidIdentityToken, ProviderUnreachable

logger = logging.getLogger(__name__)

_CACHE_TTL_SECONDS = 3600
# url -> (fetched_at, document); shared by every verifier in the process.
_discovery_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}
_jwks_cache: Dict[str, Tuple[float, Dict[str, Any]]] = {}


def _fetch_json(url: str, timeout: float) -> Dict[str, Any]:
    try:
        r = requests.get(url, timeout=timeout)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Identity provider request failed (%s): %s", url, type(e).__name__)
        raise ProviderUnreachable() from e
    if not isinstance(data, dict):
        raise ProviderUnreachable("identity provider returned an invalid document")
    return data


def _cached_fetch(
    cache: Dict[str, Tuple[float, Dict[str, Any]]], url: str, timeout: float, refresh: bool = False
) -> Dict[str, Any]:
    entry = cache.get(url)
    if entry and not refresh and time.time() - entry[0] < _CACHE_TTL_SECONDS:
        return entry[1]
    doc = _fetch_json(url, timeout)
    cache[url] = (time.time(), doc)
    return doc


def _get_discovery(discovery_url: str, timeout: float) -> Dict[str, Any]:
    """Google's OpenID configuration (issuer, jwks_uri), kept for an hour."""
    return _cached_fetch(_discovery_cache, discovery_url, timeout)


def _get_jwks(jwks_uri: str, timeout: float, *, refresh: bool = False) -> Dict[str, Any]:
    # refresh=True after an unknown kid: Google rotated its signing keys.
    return _cached_fetch(_jwks_cache, jwks_uri, timeout, refresh)


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    for candidate in jwks.get("keys") or []:
        if isinstance(candidate, dict) and candidate.get("kid") == kid:
            return candidate
    return None


def _accepted_issuers(issuer: str) -> list:
    # Google signs with either form of its issuer.
    bare = issuer.split("://", 1)[-1]
    return sorted({issuer, bare, f"https://{bare}"})


def _is_verified(value: Any) -> bool:
    if value is True:
        return True
    return isinstance(value, str) and value.strip().lower() == "true"


class GoogleTokenVerifier:
    """
    Verify Google ID tokens and extract the stable external identity.

    - Signature and expiry are checked against Google's published JWKS
    - Audience must equal the configured OAuth client id
    - `email_verified` must be true
    """

    provider = "google"

    def __init__(self, client_id: Optional[str], *, discovery_url: str, timeout: float = 10.0) -> None:
        self.client_id = client_id
        self.discovery_url = discovery_url
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: AuthConfig) -> "GoogleTokenVerifier":
        return cls(cfg.google_client_id, discovery_url=cfg.google_discovery_url, timeout=cfg.provider_timeout_seconds)

    @property
    def enabled(self) -> bool:
        return bool(self.client_id)

    def _signing_key(self, kid: str, jwks_uri: str) -> Any:
        jwk = _find_key(_get_jwks(jwks_uri, self.timeout), kid)
        if jwk is None:
            # Unknown kid: Google may have rotated keys since we cached them.
            jwk = _find_key(_get_jwks(jwks_uri, self.timeout, refresh=True), kid)
        if jwk is None:
            raise InvalidIdentityToken("unknown signing key (kid)")
        try:
            return jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise InvalidIdentityToken("unusable signing key") from e

    def verify(self, raw_token: str, expected_audience: Optional[str] = None) -> ExternalIdentity:
        audience = expected_audience or self.client_id
        if not audience:
            raise ValueError("Google client id not configured")
        if not raw_token:
            raise InvalidIdentityToken("empty token")

        try:
            hdr = jwt.get_unverified_header(raw_token)
        except jwt.PyJWTError as e:
            raise InvalidIdentityToken("malformed token") from e
        kid = str(hdr.get("kid") or "")
        if not kid:
            raise InvalidIdentityToken("token missing kid")

        disc = _get_discovery(self.discovery_url, self.timeout)
        issuer = str(disc.get("issuer") or "")
        jwks_uri = str(disc.get("jwks_uri") or "")
        if not issuer or not jwks_uri:
            raise ProviderUnreachable("identity provider discovery missing issuer/jwks_uri")

        key = self._signing_key(kid, jwks_uri)
        try:
            claims = jwt.decode(
                raw_token,
                key=key,
                algorithms=["RS256"],
                audience=audience,
                issuer=_accepted_issuers(issuer),
                options={"require": ["exp", "iat", "iss", "aud", "sub"]},
            )
        except jwt.InvalidAudienceError as e:
            raise AudienceMismatch(str(e)) from e
        except jwt.PyJWTError as e:
            raise InvalidIdentityToken(str(e)) from e

        if not _is_verified(claims.get("email_verified")):
            raise EmailNotVerified("email not verified by Google")

        subject = str(claims.get("sub") or "")
        email = str(claims.get("email") or "").strip().lower()
        if not subject or not email:
            raise InvalidIdentityToken("missing required claims in token")

        return ExternalIdentity(provider=self.provider, external_id=subject, email=email, email_verified=True)
