"""
API request and response models for PhotoAuth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Request models only check shape (presence, type, length). Semantic checks
(phone format, username availability, credential validity) belong to the
auth/ components so every entry point gets them.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

# Identifiers are trimmed on every endpoint that accepts them. Passwords and
# second-factor codes are compared byte for byte and never transformed.
Username = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, max_length=255)]
Password = Annotated[str, StringConstraints(min_length=1, max_length=128)]


class SendOtpRequest(BaseModel):
    """Request body for POST /auth/send-otp."""

    phone: str = Field(min_length=1, max_length=32)


class VerifyOtpRequest(BaseModel):
    """Request body for POST /auth/verify-otp.

    username is only consulted when the phone has no account yet.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    phone: str = Field(min_length=1, max_length=32)
    otp: str = Field(min_length=1, max_length=16)
    username: Optional[str] = Field(default=None, max_length=64)


class RegisterRequest(BaseModel):
    """Request body for POST /register."""

    username: Username
    password: Password
    email: Optional[Email] = None


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    username: Username
    password: Password


class SecondFactorRequest(BaseModel):
    """Request body for POST /admin/verify-2fa. code is an opaque string."""

    username: Username
    code: str = Field(min_length=1, max_length=64)


class BanRequest(BaseModel):
    """Request body for POST /admin/users/{uid}/ban."""

    banned: bool = True


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SendOtpResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    phone: str
    otp: Optional[str] = None  # only populated when OTP_ECHO=true


class SessionResponse(BaseModel):
    """Returned by every endpoint that issues a token."""

    model_config = ConfigDict(frozen=True)

    token: str
    uid: str
    role: Role
    username: str
    phone: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_user(cls, user: User, token: str) -> "SessionResponse":
        return cls(
            token=token,
            uid=user.uid,
            role=user.role,
            username=user.username,
            phone=user.phone,
            email=user.email,
        )


class SecondFactorRequiredResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    require2fa: bool = True


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: str
    username: str
    role: Role


class MeResponse(BaseModel):
    """Response for GET /me. Built from token claims only."""

    model_config = ConfigDict(frozen=True)

    uid: str
    role: Role
    username: str
    phone: Optional[str] = None
    email: Optional[str] = None


class UserResponse(BaseModel):
    """One row of GET /admin/users. Secrets and hashes are never included."""

    model_config = ConfigDict(frozen=True)

    uid: str
    username: str
    role: Role
    phone: Optional[str] = None
    email: Optional[str] = None
    banned: bool
    created_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            uid=user.uid,
            username=user.username,
            role=user.role,
            phone=user.phone,
            email=user.email,
            banned=user.banned,
            created_at=user.created_at,
        )


class BanResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    uid: str
    banned: bool


class DeleteUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    deleted_user: str


class ErrorResponse(BaseModel):
    """Error envelope returned on 4xx/5xx responses: {"error": message, "code": code}."""

    model_config = ConfigDict(frozen=True)

    error: str
    code: str


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
