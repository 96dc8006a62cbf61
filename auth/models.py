"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores, the challenge
store and the session issuer do the work; these only own the shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    user = "user"
    admin = "admin"


@dataclass
class User:
    """An identity known to PhotoAuth.

    uid is the only identifier other subsystems may hold on to. It is assigned
    by auth.identity.new_uid() before the row is written and never changes.

    Phone-path accounts have phone set and hashed_password None. Password-path
    accounts have hashed_password set and phone None. second_factor_secret is
    present exactly when role is Role.admin.

    id is the store's surrogate key; None before the record is written.
    """

    uid: str
    username: str
    role: Role = Role.user
    phone: Optional[str] = None
    email: Optional[str] = None
    hashed_password: Optional[str] = None  # None = phone-only account
    second_factor_secret: Optional[str] = None  # admins only
    banned: bool = False
    created_at: str = ""  # ISO 8601, set by store on insert
    id: Optional[int] = None


@dataclass
class Challenge:
    """Outstanding one-time code for a single normalized phone number."""

    code: str
    expires_at: datetime
    attempts: int = 0


class ChallengeFailure(str, Enum):
    not_found = "not_found"
    expired = "expired"
    too_many_attempts = "too_many_attempts"
    invalid_code = "invalid_code"


@dataclass(frozen=True)
class ChallengeResult:
    valid: bool
    reason: Optional[ChallengeFailure] = None


@dataclass(frozen=True)
class SessionClaims:
    """The claim set embedded in a session token.

    Exactly one contact field is carried: phone when the account has one,
    otherwise email (which may itself be None). iat and exp are epoch seconds.
    """

    uid: str
    username: str
    role: Role
    iat: int
    exp: int
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful password check.

    Admins get require_2fa=True and no token; everyone else gets a token.
    """

    user: User
    token: Optional[str] = None
    require_2fa: bool = False
