from __future__ import annotations

from functools import lru_cache

import bcrypt

from tomo.errors import HashingFailed

DEFAULT_ROUNDS = 12


@lru_cache(maxsize=8)
def _dummy_hash(rounds: int) -> bytes:
    # Verified against when the account has no password, at the same cost as
    # real hashes, so a failed login costs the same whether or not the email
    # is registered.
    return bcrypt.hashpw(b"tomo-dummy-password", bcrypt.gensalt(rounds=rounds))


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    """
    Hash password with bcrypt.

    The result is bcrypt's modular-crypt string (`$2b$<cost>$<salt><digest>`), so
    algorithm, cost and salt travel with the digest.

    Args:
        password: Plain text password
        rounds: bcrypt cost factor

    Returns:
        Bcrypt hash string

    Raises:
        HashingFailed: if bcrypt could not produce a hash
    """
    try:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")
    except (ValueError, TypeError, MemoryError) as e:
        raise HashingFailed() from e


def verify_password(password: str, password_hash: str | None, rounds: int = DEFAULT_ROUNDS) -> bool:
    """
    Verify password against bcrypt hash with constant-time comparison.

    Args:
        password: Plain text password
        password_hash: Bcrypt hash, or None for accounts without a password
        rounds: cost of the stand-in hash checked when there is no password_hash

    Returns:
        True if password matches, False otherwise
    """
    try:
        if not password_hash:
            bcrypt.checkpw(password.encode("utf-8"), _dummy_hash(rounds))
            return False
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Invalid hash format, or a password bcrypt refuses (over 72 bytes)
        return False
