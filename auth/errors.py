"""
auth/errors.py -- Exception taxonomy for the authentication core.

Every failure the core can report is an AuthServiceError carrying an HTTP
status_code and a stable machine-readable code. The API layer maps these to
responses in one exception handler; nothing below api/ imports fastapi to
raise HTTPException.

  ValidationError  400  malformed or missing input
  AuthError        401  bad credentials, code or token
  ForbiddenError   403  banned account or role mismatch
  NotFoundError    404  referenced entity absent
  ConflictError    409  duplicate username, phone or email
  InternalError    500  collaborator (storage) failure

Layer rule: no imports from api/.
"""

from __future__ import annotations

from typing import Optional


class AuthServiceError(Exception):
    """Base class for errors mapped to HTTP responses by api/main.py."""

    status_code: int = 400
    code: str = "validation_error"
    default_message: str = "Invalid request."

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if code is not None:
            self.code = code


class ValidationError(AuthServiceError):
    status_code = 400
    code = "validation_error"


class AuthError(AuthServiceError):
    status_code = 401
    code = "unauthorized"
    default_message = "Unauthorized"


class ForbiddenError(AuthServiceError):
    status_code = 403
    code = "forbidden"
    default_message = "Forbidden"


class NotFoundError(AuthServiceError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class ConflictError(AuthServiceError):
    status_code = 409
    code = "conflict"
    default_message = "Conflict"


class InternalError(AuthServiceError):
    status_code = 500
    code = "internal_error"
    default_message = "An unexpected error occurred."


# ---------------------------------------------------------------------------
# Named outcomes
# ---------------------------------------------------------------------------


class InvalidCredentialsError(AuthError):
    """Unknown username and wrong password share this error on purpose."""

    code = "invalid_credentials"
    default_message = "Invalid credentials"


class AccountBannedError(ForbiddenError):
    code = "account_banned"
    default_message = "Account banned"


class UsernameRequiredError(ValidationError):
    code = "username_required"
    default_message = "Username required for new users"


class UsernameTakenError(ConflictError):
    code = "username_taken"
    default_message = "Username already taken"


class EmailTakenError(ConflictError):
    code = "email_taken"
    default_message = "Email already taken"


# ---------------------------------------------------------------------------
# Token validation
#
# SessionIssuer.validate() raises these so tests can tell the causes apart.
# The AccessGate collapses all of them into one AuthError before any response.
# ---------------------------------------------------------------------------


class TokenError(AuthError):
    code = "invalid_token"
    default_message = "Invalid token"


class MalformedTokenError(TokenError):
    default_message = "Malformed token"


class SignatureInvalidError(TokenError):
    default_message = "Token signature invalid"


class TokenExpiredError(TokenError):
    default_message = "Token expired"
