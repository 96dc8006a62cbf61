"""
auth/tokens.py -- Session token issuance and validation.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry uid, username, role, the account's
       contact field (phone, else email), iat and exp. Nothing is stored
       server-side; a token is valid exactly when its signature checks out and
       exp has not passed.

  Signing key: held in TokenConfig, a frozen dataclass built once from
       core.config.Settings at startup and handed to SessionIssuer. No other
       module reads SECRET_KEY.

  Expiry: checked against the injected Clock rather than by jose itself
       (verify_exp is turned off), so tests can move time deterministically.

  Staleness: validate() never re-reads the user record. A ban or role change
       applied after issuance takes effect only when the token expires.
       Revocation is not supported.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jose import jwt
from jose.exceptions import JOSEError

from auth.errors import AccountBannedError, MalformedTokenError, SignatureInvalidError, TokenExpiredError
from auth.models import Role, SessionClaims, User
from core.clock import Clock

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("photoauth.auth.tokens")

_REQUIRED_CLAIMS = ("uid", "username", "role", "iat", "exp")


@dataclass(frozen=True)
class TokenConfig:
    secret_key: str
    lifetime_seconds: int = 7 * 24 * 3600
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenConfig:
        return cls(secret_key=settings.secret_key, lifetime_seconds=settings.token_expire_seconds)

    def __repr__(self) -> str:
        return f"TokenConfig(algorithm={self.algorithm!r}, lifetime_seconds={self.lifetime_seconds})"


class SessionIssuer:
    """Mints and validates signed session tokens.

    Usage:
        issuer = SessionIssuer(TokenConfig.from_settings(get_settings()), SystemClock())
        token = issuer.issue(user)
        claims = issuer.validate(token)
    """

    def __init__(self, config: TokenConfig, clock: Clock) -> None:
        self._config = config
        self._clock = clock

    @property
    def lifetime_seconds(self) -> int:
        return self._config.lifetime_seconds

    def claims_for(self, user: User) -> SessionClaims:
        """Build the claim set issue() would sign for user right now."""
        issued_at = int(self._clock.now().timestamp())
        return SessionClaims(
            uid=user.uid,
            username=user.username,
            role=Role(user.role),
            iat=issued_at,
            exp=issued_at + self._config.lifetime_seconds,
            phone=user.phone,
            email=None if user.phone else user.email,
        )

    def issue(self, user: User) -> str:
        """Return a signed token for user. Banned accounts get AccountBannedError."""
        if user.banned:
            logger.info("Refusing session for banned account uid=%s", user.uid)
            raise AccountBannedError()
        claims = self.claims_for(user)
        return jwt.encode(_claims_to_payload(claims), self._config.secret_key, algorithm=self._config.algorithm)

    def validate(self, token: str) -> SessionClaims:
        """Verify token and return its embedded claim set.

        Raises MalformedTokenError, SignatureInvalidError or TokenExpiredError.
        """
        try:
            jwt.get_unverified_claims(token)
        except (JOSEError, AttributeError, TypeError) as exc:
            raise MalformedTokenError() from exc

        try:
            payload = jwt.decode(
                token,
                self._config.secret_key,
                algorithms=[self._config.algorithm],
                options={"verify_exp": False},
            )
        except JOSEError as exc:
            raise SignatureInvalidError() from exc

        claims = _payload_to_claims(payload)
        if self._clock.now().timestamp() > claims.exp:
            raise TokenExpiredError()
        return claims


# ---------------------------------------------------------------------------
# Payload mapping
# ---------------------------------------------------------------------------


def _claims_to_payload(claims: SessionClaims) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "sub": claims.uid,
        "uid": claims.uid,
        "username": claims.username,
        "role": claims.role.value,
        "iat": claims.iat,
        "exp": claims.exp,
    }
    if claims.phone:
        payload["phone"] = claims.phone
    else:
        payload["email"] = claims.email
    return payload


def _payload_to_claims(payload: dict[str, Any]) -> SessionClaims:
    if any(key not in payload for key in _REQUIRED_CLAIMS):
        raise MalformedTokenError()
    try:
        return SessionClaims(
            uid=str(payload["uid"]),
            username=str(payload["username"]),
            role=Role(payload["role"]),
            iat=int(payload["iat"]),
            exp=int(payload["exp"]),
            phone=payload.get("phone"),
            email=payload.get("email"),
        )
    except (TypeError, ValueError) as exc:
        raise MalformedTokenError() from exc
