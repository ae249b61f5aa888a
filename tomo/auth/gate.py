from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from tomo.auth.models import CallerIdentity
from tomo.auth.tokens import SessionTokenService
from tomo.errors import TokenError, Unauthenticated

logger = logging.getLogger(__name__)

AUTH_HEADER = "Authorization"
SCHEME = "Bearer"

# One message for every token failure: clients never learn which check failed.
INVALID_TOKEN_MESSAGE = "invalid or expired token"


def authenticate_header(header_value: Optional[str], tokens: SessionTokenService) -> CallerIdentity:
    """
    Turn an `Authorization` header value into a verified caller.

    Missing header, anything other than exactly `Bearer <token>`, and every
    token validation failure reject with Unauthenticated. Storage is not
    consulted; the principal may have been deleted since the token was issued.
    """
    if not header_value:
        raise Unauthenticated("missing Authorization header")

    parts = header_value.split(" ")
    if len(parts) != 2 or parts[0] != SCHEME or not parts[1]:
        raise Unauthenticated("invalid Authorization format")

    try:
        claims = tokens.validate(parts[1])
    except TokenError as e:
        logger.debug("Rejected session token: %s (%s)", type(e).__name__, str(e))
        raise Unauthenticated(INVALID_TOKEN_MESSAGE) from None

    return CallerIdentity(subject_id=claims.subject, email=claims.email)


def _token_service(request: Request) -> SessionTokenService:
    return request.app.state.tokens


def require_caller(request: Request) -> CallerIdentity:
    """FastAPI dependency: reject the request unless it carries a valid bearer token."""
    return authenticate_header(request.headers.get(AUTH_HEADER), _token_service(request))


def optional_caller(request: Request) -> Optional[CallerIdentity]:
    """
    FastAPI dependency for endpoints that also serve anonymous readers.

    No header means anonymous; a header that is present must still be valid.
    """
    header = request.headers.get(AUTH_HEADER)
    if header is None:
        return None
    return authenticate_header(header, _token_service(request))
