from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExternalIdentity:
    """Identity asserted by a verified third-party token."""

    provider: str  # google
    external_id: str  # provider `sub`
    email: str
    email_verified: bool


@dataclass(frozen=True)
class CallerIdentity:
    """Verified caller of a request, produced by the authentication gate."""

    subject_id: int
    email: str
