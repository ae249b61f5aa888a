"""
Credential exchange endpoints: password registration/login and Google sign-in.

Each success returns a fresh session token together with the principal.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from tomo.api.deps import get_bcrypt_rounds, get_google, get_store, get_tokens
from tomo.api.schemas import GoogleAuthRequest, LoginRequest, RegisterRequest
from tomo.auth.google import GoogleTokenVerifier
from tomo.auth.passwords import hash_password, verify_password
from tomo.auth.tokens import SessionTokenService
from tomo.authz.policy import conflict_on_unique
from tomo.errors import (
    Conflict,
    IdentityError,
    MalformedRequest,
    Unauthenticated,
    UpstreamUnavailable,
)
from tomo.models import User
from tomo.store.base import Store

logger = logging.getLogger(__name__)

router = APIRouter()

USERNAME_MIN = 3
USERNAME_MAX = 30
PASSWORD_MIN = 8
# bcrypt only looks at the first 72 bytes and bcrypt>=4.1 refuses longer input.
PASSWORD_MAX_BYTES = 72

LOGIN_FAILED_MESSAGE = "invalid email or password"
GOOGLE_EMAIL_CONFLICT_MESSAGE = "email already registered with different account"

_USER_CONFLICTS = {
    "email": "email already registered",
    "username": "username already taken",
    "google_id": "Google account already linked",
}


def normalize_email(raw: str) -> str:
    return (raw or "").strip().lower()


def validate_username(username: str) -> str:
    username = (username or "").strip()
    if not username:
        raise MalformedRequest("username cannot be empty")
    if not USERNAME_MIN <= len(username) <= USERNAME_MAX:
        raise MalformedRequest(f"username must be between {USERNAME_MIN} and {USERNAME_MAX} characters")
    return username


def _session_response(tokens: SessionTokenService, user: User) -> Dict[str, Any]:
    return {"token": tokens.issue(user.id, user.email), "user": user.model_dump(mode="json")}


@router.post("/register", status_code=201)
def register(
    body: RegisterRequest,
    store: Store = Depends(get_store),
    tokens: SessionTokenService = Depends(get_tokens),
    rounds: int = Depends(get_bcrypt_rounds),
) -> Dict[str, Any]:
    email = normalize_email(body.email)
    if not email or not body.username or not body.password:
        raise MalformedRequest("email, username and password are required")
    if "@" not in email:
        raise MalformedRequest("invalid email")
    username = validate_username(body.username)
    if len(body.password) < PASSWORD_MIN:
        raise MalformedRequest(f"password must be at least {PASSWORD_MIN} characters")
    if len(body.password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise MalformedRequest(f"password must be at most {PASSWORD_MAX_BYTES} bytes")

    # Friendly pre-checks; the unique constraints below are what actually decide.
    if store.email_exists(email):
        raise Conflict(_USER_CONFLICTS["email"])
    if store.username_exists(username):
        raise Conflict(_USER_CONFLICTS["username"])

    password_hash = hash_password(body.password, rounds)
    with conflict_on_unique(_USER_CONFLICTS):
        user = store.create_user(email=email, username=username, password_hash=password_hash)

    logger.info("Registered user id=%s", user.id)
    return _session_response(tokens, user)


@router.post("/login")
def login(
    body: LoginRequest,
    store: Store = Depends(get_store),
    tokens: SessionTokenService = Depends(get_tokens),
    rounds: int = Depends(get_bcrypt_rounds),
) -> Dict[str, Any]:
    email = normalize_email(body.email)
    if not email or not body.password:
        raise MalformedRequest("email and password are required")

    user = store.get_user_by_email(email)
    # Always run bcrypt, even for unknown emails, so both failures look the same.
    ok = verify_password(body.password, user.password_hash if user else None, rounds=rounds)
    if user is None or not ok:
        logger.debug("Login rejected (known_email=%s)", user is not None)
        raise Unauthenticated(LOGIN_FAILED_MESSAGE)

    return _session_response(tokens, user)


@router.post("/auth/google")
def google_auth(
    body: GoogleAuthRequest,
    store: Store = Depends(get_store),
    tokens: SessionTokenService = Depends(get_tokens),
    google: GoogleTokenVerifier = Depends(get_google),
) -> Dict[str, Any]:
    """
    Exchange a Google ID token for a session token.

    Resolution order: existing account with this Google id, else a new account.
    The verified email already belonging to any other account is a conflict;
    accounts are never merged on email alone.
    """
    if not google.enabled:
        raise UpstreamUnavailable("Google sign-in is not configured")
    if not body.id_token:
        raise MalformedRequest("id_token is required")

    try:
        identity = google.verify(body.id_token)
    except IdentityError as e:
        logger.info("Google token rejected: %s (%s)", type(e).__name__, str(e))
        raise Unauthenticated("invalid Google token") from None

    user = store.get_user_by_google_id(identity.external_id)
    if user is None:
        if store.email_exists(identity.email):
            logger.info("Google sign-in refused: email belongs to another account")
            raise Conflict(GOOGLE_EMAIL_CONFLICT_MESSAGE)
        with conflict_on_unique({**_USER_CONFLICTS, "email": GOOGLE_EMAIL_CONFLICT_MESSAGE}):
            user = store.create_user(
                email=identity.email,
                username=None,
                password_hash=None,
                google_id=identity.external_id,
            )
        logger.info("Created user id=%s from Google identity", user.id)

    return _session_response(tokens, user)
