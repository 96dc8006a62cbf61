"""
auth/passwords.py -- Password hashing and the two credential checks.

  verify_password()       -- CredentialVerifier: bcrypt check against the stored hash
  verify_second_factor()  -- SecondFactorVerifier: static per-admin code

Passwords: bcrypt used directly (no passlib wrapper). bcrypt.checkpw does its
own constant-time comparison, so timing resistance comes from the primitive.
Passwords longer than 72 bytes are truncated by bcrypt; the API layer caps
password length at 128 characters.

Second factor: a static shared secret stored on the admin's row. It is
compared as an opaque string with hmac.compare_digest -- "0042" and "42" are
different codes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hmac
from typing import Optional

import bcrypt

from auth.models import Role, User


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: Optional[str], hashed: Optional[str]) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A missing or malformed hash is treated as a mismatch, never an error.
    """
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash.
# Computed once at module load. Callers run verify_password() against it when
# the username does not exist or the account has no password, so response
# time does not reveal which case occurred.
DUMMY_HASH: str = hash_password("photoauth_timing_dummy")


def verify_second_factor(user: User, supplied_code: Optional[str]) -> bool:
    """Return True only for an admin whose stored secret equals supplied_code."""
    if user.role != Role.admin:
        return False
    secret = user.second_factor_secret
    if not secret or supplied_code is None:
        return False
    return hmac.compare_digest(secret.encode("utf-8"), str(supplied_code).encode("utf-8"))
