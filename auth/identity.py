"""
auth/identity.py -- Maps external identifiers (phone, username) to User records.

IdentityResolver owns the User lifecycle: lookup, creation through either
credential path, and the moderation operations (ban, delete) exposed to
admins. It talks to the UserStore repository and nothing else.

Uniqueness is checked twice. The pre-insert availability check gives callers
a precise UsernameTaken / EmailTaken answer in the common case. The store's
UNIQUE constraints catch the concurrent case where two creations pass the
check at the same moment; the loser's IntegrityError becomes ConflictError.

Storage failures other than constraint violations are logged here with the
full traceback and re-raised as a generic InternalError, so no driver message
ever reaches a client.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import (
    ConflictError,
    EmailTakenError,
    InternalError,
    NotFoundError,
    UsernameRequiredError,
    UsernameTakenError,
    ValidationError,
)
from auth.models import Role, User
from auth.store import UserStore

logger = logging.getLogger("photoauth.auth.identity")

USERNAME_MIN_LEN = 3
USERNAME_MAX_LEN = 64


def new_uid() -> str:
    """Return a fresh user identifier: u_<hex millis>_<16 random hex chars>.

    This is the only place uids are minted. The random suffix keeps two
    creations in the same millisecond apart.
    """
    return f"u_{int(time.time() * 1000):x}_{secrets.token_hex(8)}"


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except IntegrityError as exc:
        logger.info("Duplicate key during %s: %s", operation, exc.orig)
        raise ConflictError("Username, phone or email already in use") from exc
    except SQLAlchemyError as exc:
        logger.exception("User store failure during %s", operation)
        raise InternalError() from exc


class IdentityResolver:
    """Lookup and creation of User records over a UserStore."""

    def __init__(self, store: UserStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve_by_username(self, username: str) -> User:
        with _store_errors("resolve_by_username"):
            user = self._store.get_by_username(username)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def resolve_by_phone(self, phone: str) -> User:
        with _store_errors("resolve_by_phone"):
            user = self._store.get_by_phone(phone)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def resolve_by_uid(self, uid: str) -> User:
        with _store_errors("resolve_by_uid"):
            user = self._store.get_by_uid(uid)
        if user is None:
            raise NotFoundError("User not found")
        return user

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def resolve_or_create_by_phone(self, phone: str, requested_username: Optional[str]) -> User:
        """Return the user owning phone, creating one on first verification.

        requested_username is ignored when the phone is already registered.
        """
        with _store_errors("resolve_or_create_by_phone"):
            existing = self._store.get_by_phone(phone)
        if existing is not None:
            return existing

        username = (requested_username or "").strip()
        if len(username) < USERNAME_MIN_LEN:
            raise UsernameRequiredError()
        _check_username_length(username)

        with _store_errors("resolve_or_create_by_phone"):
            if self._store.get_by_username(username) is not None:
                raise UsernameTakenError()
            user = self._store.create_user(User(uid=new_uid(), username=username, phone=phone, role=Role.user))
        logger.info("New phone user created: uid=%s username=%s", user.uid, user.username)
        return user

    def create_with_password(
        self,
        username: str,
        password_hash: str,
        role: Role = Role.user,
        second_factor_secret: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        """Create a password-path account.

        Admins must carry a second-factor secret and nobody else may.
        """
        if not username or not password_hash:
            raise ValidationError("Username and password required", code="missing_fields")
        _check_username_length(username)
        role = Role(role)
        if role == Role.admin and not second_factor_secret:
            raise ValidationError("Admin accounts require a second-factor secret")
        if role != Role.admin and second_factor_secret:
            raise ValidationError("Only admin accounts carry a second-factor secret")

        with _store_errors("create_with_password"):
            if self._store.get_by_username(username) is not None:
                raise UsernameTakenError()
            if email and self._store.get_by_email(email) is not None:
                raise EmailTakenError()
            user = self._store.create_user(
                User(
                    uid=new_uid(),
                    username=username,
                    email=email or None,
                    hashed_password=password_hash,
                    role=role,
                    second_factor_secret=second_factor_secret,
                )
            )
        logger.info("Password user created: uid=%s username=%s role=%s", user.uid, user.username, user.role.value)
        return user

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        with _store_errors("list_users"):
            return self._store.list_users()

    def set_banned(self, uid: str, banned: bool) -> User:
        with _store_errors("set_banned"):
            updated = self._store.set_banned(uid, banned)
        if not updated:
            raise NotFoundError("User not found")
        return self.resolve_by_uid(uid)

    def delete_user(self, uid: str) -> User:
        user = self.resolve_by_uid(uid)
        with _store_errors("delete_user"):
            deleted = self._store.delete_user(uid)
        if not deleted:
            raise NotFoundError("User not found")
        return user


def _check_username_length(username: str) -> None:
    if not (USERNAME_MIN_LEN <= len(username) <= USERNAME_MAX_LEN):
        raise ValidationError(
            f"Username must be {USERNAME_MIN_LEN}-{USERNAME_MAX_LEN} characters",
            code="invalid_username",
        )
