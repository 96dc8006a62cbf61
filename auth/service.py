"""
auth/service.py -- The two login protocols and the admin moderation operations.

AuthService wires the components together; it owns no state of its own
beyond references to them:

  Phone path:     send_otp() -> verify_otp()
                  ChallengeStore.request -> ChallengeStore.verify
                  -> IdentityResolver.resolve_or_create_by_phone -> SessionIssuer.issue

  Password path:  login() -> (admins only) verify_admin_second_factor()
                  IdentityResolver.resolve_by_username -> verify_password
                  -> role test -> verify_second_factor -> SessionIssuer.issue

Password login is a fixed sequence, not a free composition:
  1. Unknown username -> InvalidCredentials. Banned -> AccountBanned.
  2. Wrong password -> InvalidCredentials (same error as step 1's unknown user).
  3. Admin -> LoginResult(require_2fa=True). Never a token at this step.
  4. Anyone else -> token.
  5. verify_admin_second_factor() re-resolves the user from scratch; it does
     not rely on step 1-4 having happened.

OTP failures keep their specific reason because phone numbers are not secret.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.challenges import ChallengeStore, normalize_phone
from auth.delivery import CodeSender
from auth.errors import (
    AccountBannedError,
    AuthError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from auth.identity import IdentityResolver
from auth.models import ChallengeFailure, LoginResult, Role, User
from auth.passwords import DUMMY_HASH, hash_password, verify_password, verify_second_factor
from auth.tokens import SessionIssuer

logger = logging.getLogger("photoauth.auth.service")

_CHALLENGE_MESSAGES = {
    ChallengeFailure.not_found: "OTP not found",
    ChallengeFailure.expired: "OTP expired",
    ChallengeFailure.too_many_attempts: "Too many attempts",
    ChallengeFailure.invalid_code: "Invalid OTP",
}


class AuthService:
    def __init__(
        self,
        challenges: ChallengeStore,
        identities: IdentityResolver,
        issuer: SessionIssuer,
        sender: CodeSender,
    ) -> None:
        self.challenges = challenges
        self.identities = identities
        self.issuer = issuer
        self.sender = sender

    # ------------------------------------------------------------------
    # Phone path
    # ------------------------------------------------------------------

    def send_otp(self, raw_phone: Optional[str]) -> tuple[str, str]:
        """Issue and deliver a code. Returns (normalized phone, code)."""
        phone = normalize_phone(raw_phone)
        code = self.challenges.request(phone)
        self.sender.send(phone, code)
        return phone, code

    def verify_otp(
        self, raw_phone: Optional[str], code: Optional[str], username: Optional[str] = None
    ) -> tuple[User, str]:
        """Consume a code and return (user, token), creating the user on first login."""
        if not raw_phone or not code:
            raise ValidationError("Missing phone or OTP", code="missing_fields")
        phone = normalize_phone(raw_phone)

        result = self.challenges.verify(phone, code)
        if not result.valid:
            logger.info("OTP verification failed for %s: %s", phone, result.reason.value)
            raise ValidationError(_CHALLENGE_MESSAGES[result.reason], code=f"otp_{result.reason.value}")

        user = self.identities.resolve_or_create_by_phone(phone, username)
        token = self.issuer.issue(user)
        logger.info("OTP login: uid=%s username=%s", user.uid, user.username)
        return user, token

    # ------------------------------------------------------------------
    # Password path
    # ------------------------------------------------------------------

    def register(self, username: str, password: str, email: Optional[str] = None) -> User:
        """Create a regular password account. Admins are created via ensure_admin()."""
        if not username or not password:
            raise ValidationError("Username and password required", code="missing_fields")
        return self.identities.create_with_password(username, hash_password(password), Role.user, email=email)

    def login(self, username: str, password: str) -> LoginResult:
        try:
            user = self.identities.resolve_by_username(username or "")
        except NotFoundError:
            # Equalize timing with the wrong-password branch.
            verify_password(password or "x", DUMMY_HASH)
            logger.info("Login failed: unknown username")
            raise InvalidCredentialsError() from None

        if user.banned:
            logger.info("Login refused: uid=%s is banned", user.uid)
            raise AccountBannedError()

        if not verify_password(password, user.hashed_password or DUMMY_HASH):
            logger.info("Login failed: bad password for uid=%s", user.uid)
            raise InvalidCredentialsError()

        if user.role == Role.admin:
            logger.info("Login: second factor required for uid=%s", user.uid)
            return LoginResult(user=user, require_2fa=True)

        token = self.issuer.issue(user)
        logger.info("Login: uid=%s username=%s", user.uid, user.username)
        return LoginResult(user=user, token=token)

    def verify_admin_second_factor(self, username: str, code: str) -> tuple[User, str]:
        """Check an admin's static second-factor code and issue a session."""
        try:
            user = self.identities.resolve_by_username(username or "")
        except NotFoundError:
            logger.info("2FA failed: unknown username")
            raise AuthError("Invalid user or code", code="invalid_second_factor") from None

        if user.role != Role.admin or not verify_second_factor(user, code):
            logger.info("2FA failed for uid=%s", user.uid)
            raise AuthError("Invalid user or code", code="invalid_second_factor")

        token = self.issuer.issue(user)
        logger.info("2FA login: uid=%s username=%s", user.uid, user.username)
        return user, token

    # ------------------------------------------------------------------
    # Admin bootstrap and moderation
    # ------------------------------------------------------------------

    def ensure_admin(self, username: str, password: str, second_factor_secret: str) -> User:
        """Create the admin account if the username is free; otherwise return it.

        An existing non-admin account with that username is left untouched and
        reported as a ValidationError.
        """
        try:
            existing = self.identities.resolve_by_username(username)
        except NotFoundError:
            user = self.identities.create_with_password(
                username, hash_password(password), Role.admin, second_factor_secret=second_factor_secret
            )
            logger.info("Admin account created: uid=%s username=%s", user.uid, user.username)
            return user
        if existing.role != Role.admin:
            raise ValidationError(f"User '{username}' exists and is not an admin")
        logger.info("Admin account already exists: username=%s", username)
        return existing

    def list_users(self) -> list[User]:
        return self.identities.list_users()

    def set_banned(self, uid: str, banned: bool, acting_uid: str) -> User:
        if uid == acting_uid and banned:
            raise ValidationError("Cannot ban your own account")
        user = self.identities.set_banned(uid, banned)
        logger.info("User %s %s by %s", uid, "banned" if banned else "unbanned", acting_uid)
        return user

    def delete_user(self, uid: str, acting_uid: str) -> User:
        if uid == acting_uid:
            raise ValidationError("Cannot delete your own account")
        user = self.identities.delete_user(uid)
        logger.info("User %s (%s) deleted by %s", uid, user.username, acting_uid)
        return user
