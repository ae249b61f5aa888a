"""
Session tokens: stateless HS256 JWTs carrying the principal id and email.

Tokens are never persisted server-side and are invalidated only by expiry.
Validation does not look the principal up in storage; handlers that need the
account do that themselves.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt  # PyJWT

from tomo.errors import BadSignature, ExpiredToken, MalformedToken, SigningFailed, UnexpectedAlgorithm

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
DEFAULT_TTL_SECONDS = 24 * 3600


@dataclass(frozen=True)
class SessionClaims:
    subject: int
    email: str
    issued_at: int
    expires_at: int

    def to_payload(self) -> Dict[str, Any]:
        # PyJWT requires `sub` to be a string.
        return {"sub": str(self.subject), "email": self.email, "iat": self.issued_at, "exp": self.expires_at}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "SessionClaims":
        sub = payload.get("sub")
        email = payload.get("email")
        iat = payload.get("iat")
        exp = payload.get("exp")
        if not isinstance(sub, str) or not sub.isdigit():
            raise MalformedToken("sub claim must be a numeric string")
        if not isinstance(email, str) or not email:
            raise MalformedToken("email claim missing")
        # bool is an int subclass; reject it explicitly.
        for name, value in (("iat", iat), ("exp", exp)):
            if not isinstance(value, int) or isinstance(value, bool):
                raise MalformedToken(f"{name} claim must be an integer")
        return cls(subject=int(sub), email=email, issued_at=iat, expires_at=exp)


def _now() -> int:
    return int(time.time())


class SessionTokenService:
    """
    Issue and validate session tokens with one symmetric key.

    The key is handed in once at construction and never changes for the life
    of the service.
    """

    def __init__(self, secret: str, *, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        if not secret:
            raise ValueError("session token secret must not be empty")
        self._secret = secret
        self.ttl_seconds = ttl_seconds

    def issue(self, subject_id: int, email: str, ttl_seconds: Optional[int] = None, *, now: Optional[int] = None) -> str:
        issued_at = _now() if now is None else int(now)
        ttl = self.ttl_seconds if ttl_seconds is None else int(ttl_seconds)
        claims = SessionClaims(subject=subject_id, email=email, issued_at=issued_at, expires_at=issued_at + ttl)
        try:
            return jwt.encode(claims.to_payload(), self._secret, algorithm=ALGORITHM)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            logger.error("Session token signing failed: %s", type(e).__name__)
            raise SigningFailed() from e

    def validate(self, token: str, *, now: Optional[int] = None) -> SessionClaims:
        """
        Validate a session token and return its claims unmodified.

        Raises:
            MalformedToken: not a JWT, or claims missing / wrongly typed
            UnexpectedAlgorithm: header alg is anything but HS256
            BadSignature: signed with a different key
            ExpiredToken: now > exp, or the token was issued with no lifetime
        """
        if not token or not isinstance(token, str):
            raise MalformedToken("empty token")
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise MalformedToken(str(e)) from e
        alg = header.get("alg")
        if alg != ALGORITHM:
            raise UnexpectedAlgorithm(f"unexpected signing method: {alg!r}")

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={
                    "require": ["sub", "exp", "iat"],
                    # Expiry is checked below with whole-second, strict semantics.
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.InvalidSignatureError as e:
            raise BadSignature(str(e)) from e
        except jwt.InvalidAlgorithmError as e:
            raise UnexpectedAlgorithm(str(e)) from e
        except jwt.PyJWTError as e:
            raise MalformedToken(str(e)) from e

        claims = SessionClaims.from_payload(payload)
        current = _now() if now is None else int(now)
        if claims.expires_at <= claims.issued_at:
            raise ExpiredToken("token issued without a lifetime")
        if current > claims.expires_at:
            raise ExpiredToken("token expired")
        return claims
