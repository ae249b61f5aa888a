"""
Error taxonomy shared by the auth core and the HTTP layer.

Every error carries the HTTP status it maps to; the API renders them as
`{"error": <message>}`. Messages are client-safe by construction: internal
detail goes to the log, never into the message.
"""
from __future__ import annotations


class TomoError(Exception):
    status_code = 500
    default_message = "internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MalformedRequest(TomoError):
    status_code = 400
    default_message = "invalid request"


class Unauthenticated(TomoError):
    status_code = 401
    default_message = "unauthenticated"


class Forbidden(TomoError):
    status_code = 403
    default_message = "forbidden"


class NotFound(TomoError):
    status_code = 404
    default_message = "not found"


class Conflict(TomoError):
    status_code = 409
    default_message = "conflict"


class UpstreamUnavailable(TomoError):
    status_code = 503
    default_message = "upstream service unavailable"


class InternalError(TomoError):
    status_code = 500


class ConfigError(RuntimeError):
    """Fatal misconfiguration detected at startup."""


# ---- Credential hashing / token signing ----


class HashingFailed(InternalError):
    default_message = "failed to hash credential"


class SigningFailed(InternalError):
    default_message = "failed to sign session token"


# ---- Session token validation ----


class TokenError(Exception):
    """Base for session token validation failures (never shown to clients)."""


class MalformedToken(TokenError):
    pass


class BadSignature(TokenError):
    pass


class ExpiredToken(TokenError):
    pass


class UnexpectedAlgorithm(TokenError):
    pass


# ---- External identity verification ----


class IdentityError(Exception):
    """Base for rejected external identity tokens."""


class InvalidIdentityToken(IdentityError):
    pass


class AudienceMismatch(IdentityError):
    pass


class EmailNotVerified(IdentityError):
    pass


class ProviderUnreachable(UpstreamUnavailable):
    default_message = "identity provider unreachable"


# ---- Storage ----


class StoreError(Exception):
    """Unexpected storage failure."""


class UniqueViolation(StoreError):
    """A unique constraint rejected a write."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"unique constraint violated: {field}")
