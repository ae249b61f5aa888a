from __future__ import annotations

import base64
import json

import jwt
import pytest

from tomo.auth.tokens import SessionClaims, SessionTokenService
from tomo.errors import BadSignature, ExpiredToken, MalformedToken, SigningFailed, UnexpectedAlgorithm

SECRET = "test-secret-key-for-testing-purposes-only"
OTHER_SECRET = "another-secret-key-for-testing-purposes-0000"


def _b64(obj: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(obj).encode("utf-8")).rstrip(b"=").decode("ascii")


def test_issue_then_validate_returns_same_claims() -> None:
    svc = SessionTokenService(SECRET, ttl_seconds=3600)
    token = svc.issue(7, "a@x.com", now=1_700_000_000)
    claims = svc.validate(token, now=1_700_000_100)
    assert claims == SessionClaims(subject=7, email="a@x.com", issued_at=1_700_000_000, expires_at=1_700_003_600)


def test_default_ttl_is_a_day() -> None:
    svc = SessionTokenService(SECRET)
    claims = svc.validate(svc.issue(1, "a@x.com", now=1000), now=1000)
    assert claims.expires_at - claims.issued_at == 24 * 3600


def test_valid_through_exact_expiry_second() -> None:
    svc = SessionTokenService(SECRET)
    token = svc.issue(1, "a@x.com", 60, now=1000)
    assert svc.validate(token, now=1060).subject == 1
    with pytest.raises(ExpiredToken):
        svc.validate(token, now=1061)


@pytest.mark.parametrize("ttl", [0, -1, -3600])
def test_non_positive_ttl_is_always_expired(ttl: int) -> None:
    svc = SessionTokenService(SECRET)
    token = svc.issue(1, "a@x.com", ttl, now=1000)
    with pytest.raises(ExpiredToken):
        svc.validate(token, now=1000)
    with pytest.raises(ExpiredToken):
        svc.validate(token, now=900)


def test_token_from_another_key_is_rejected() -> None:
    token = SessionTokenService(OTHER_SECRET).issue(1, "a@x.com")
    with pytest.raises(BadSignature):
        SessionTokenService(SECRET).validate(token)


def test_other_hmac_algorithm_is_rejected() -> None:
    payload = SessionClaims(subject=1, email="a@x.com", issued_at=1000, expires_at=5000).to_payload()
    token = jwt.encode(payload, SECRET, algorithm="HS512")
    with pytest.raises(UnexpectedAlgorithm):
        SessionTokenService(SECRET).validate(token, now=1000)


def test_altered_header_algorithm_is_rejected() -> None:
    svc = SessionTokenService(SECRET)
    _header, payload, signature = svc.issue(1, "a@x.com").split(".")
    forged = ".".join([_b64({"alg": "HS384", "typ": "JWT"}), payload, signature])
    with pytest.raises(UnexpectedAlgorithm):
        svc.validate(forged)


def test_unsigned_token_is_rejected() -> None:
    payload = {"sub": "1", "email": "a@x.com", "iat": 1000, "exp": 5000}
    token = f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64(payload)}."
    with pytest.raises(UnexpectedAlgorithm):
        SessionTokenService(SECRET).validate(token, now=1000)


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_tokens(token: str) -> None:
    with pytest.raises(MalformedToken):
        SessionTokenService(SECRET).validate(token)


def test_missing_or_mistyped_claims_are_malformed() -> None:
    svc = SessionTokenService(SECRET)
    no_email = jwt.encode({"sub": "1", "iat": 1000, "exp": 5000}, SECRET, algorithm="HS256")
    with pytest.raises(MalformedToken):
        svc.validate(no_email, now=1000)

    text_exp = jwt.encode({"sub": "1", "email": "a@x.com", "iat": 1000, "exp": "5000"}, SECRET, algorithm="HS256")
    with pytest.raises(MalformedToken):
        svc.validate(text_exp, now=1000)

    no_exp = jwt.encode({"sub": "1", "email": "a@x.com", "iat": 1000}, SECRET, algorithm="HS256")
    with pytest.raises(MalformedToken):
        svc.validate(no_exp, now=1000)


def test_empty_secret_is_refused() -> None:
    with pytest.raises(ValueError):
        SessionTokenService("")


def test_signing_failure_is_reported(monkeypatch) -> None:
    def _boom(*args, **kwargs):
        raise TypeError("unserializable")

    monkeypatch.setattr("tomo.auth.tokens.jwt.encode", _boom)
    with pytest.raises(SigningFailed):
        SessionTokenService(SECRET).issue(1, "a@x.com")
