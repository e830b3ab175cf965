"""
auth/passwords.py -- Password hashing and constant-time verification.

Passwords: bcrypt, used directly rather than through passlib. passlib's
internal wrap-bug detection builds a password longer than 72 bytes, which
bcrypt 4.x rejects with an explicit error. Direct usage has no shim.

The DUMMY_HASH constant lets callers run exactly one bcrypt comparison on
every login attempt, including attempts for unknown or inactive accounts, so
response time does not reveal whether an email is registered [C1].

Layer rule: leaf module. Imports only bcrypt.
"""

from __future__ import annotations

import bcrypt


def hash_password(plain: str) -> str:
    """Return a salted bcrypt digest of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API layer caps password
    length (Pydantic max_length) to keep inputs well below that.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt digest.

    bcrypt.checkpw compares in constant time. A malformed digest counts as a
    mismatch rather than an error: a corrupt row must not become a 500 that
    distinguishes it from a wrong password.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy digest [C1]. Computed once at import so the first
# login attempt is not measurably slower than later ones.
DUMMY_HASH: str = hash_password("taskgate_timing_dummy")


def burn_verification(plain: str) -> None:
    """Spend one bcrypt comparison's worth of time and discard the result."""
    verify_password(plain, DUMMY_HASH)
