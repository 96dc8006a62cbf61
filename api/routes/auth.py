"""
api/routes/auth.py -- Sign-in endpoints and the current-identity endpoint.

Routes:
  POST /auth/send-otp      -- issue a one-time code for a phone (delivered out of band)
  POST /auth/verify-otp    -- consume the code; returns a session, creating the user if new
  POST /register           -- create a password account
  POST /login              -- password login; admins get {require2fa: true} instead of a token
  POST /admin/verify-2fa   -- admin second factor; returns a session
  GET  /me                 -- identity from the bearer token (requires auth)

Security:
  - /login, /admin/verify-2fa, /auth/send-otp and /auth/verify-otp are
    rate-limited per client IP.
  - Unknown username and wrong password return the same 401 body.
  - Cache-Control: no-store on every response that can carry a token or code.

Errors raised by auth/ (AuthServiceError subclasses) are turned into
{"error", "code"} responses by the handler in api/main.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import LOGIN_LIMIT, OTP_LIMIT, limiter
from api.models import (
    LoginRequest,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
    SecondFactorRequest,
    SecondFactorRequiredResponse,
    SendOtpRequest,
    SendOtpResponse,
    SessionResponse,
    VerifyOtpRequest,
)
from auth.dependencies import get_current_claims
from auth.models import SessionClaims
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /auth/send-otp:       public
# - POST /auth/verify-otp:     public
# - POST /register:            public
# - POST /login:               public
# - POST /admin/verify-2fa:    public -- it is the second half of admin login
# - GET  /me:                  requires auth (get_current_claims)
router = APIRouter()


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Phone path
# ---------------------------------------------------------------------------


@limiter.limit(OTP_LIMIT)
@router.post("/auth/send-otp", response_model=SendOtpResponse)
def send_otp(request: Request, body: SendOtpRequest) -> JSONResponse:
    """Issue a 6-digit code for the phone, replacing any pending one.

    The code goes to the configured CodeSender. It is echoed in the response
    only when OTP_ECHO=true (development).
    """
    service: AuthService = request.app.state.auth_service
    phone, code = service.send_otp(body.phone)
    payload = SendOtpResponse(phone=phone, otp=code if get_settings().otp_echo else None)
    return _no_store(JSONResponse(content=payload.model_dump(mode="json", exclude_none=True)))


@limiter.limit(OTP_LIMIT)
@router.post("/auth/verify-otp", response_model=SessionResponse)
def verify_otp(request: Request, body: VerifyOtpRequest) -> JSONResponse:
    """Consume the code and return a session.

    First-time phones need a username; 400 if missing, 409 if taken.
    """
    service: AuthService = request.app.state.auth_service
    user, token = service.verify_otp(body.phone, body.otp, body.username)
    payload = SessionResponse.from_user(user, token)
    return _no_store(JSONResponse(content=payload.model_dump(mode="json")))


# ---------------------------------------------------------------------------
# Password path
# ---------------------------------------------------------------------------


@router.post("/register", response_model=RegisterResponse)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a regular password account. Username and email availability are disclosed here."""
    service: AuthService = request.app.state.auth_service
    user = service.register(body.username, body.password, body.email or None)
    return RegisterResponse(uid=user.uid, username=user.username, role=user.role)


@limiter.limit(LOGIN_LIMIT)
@router.post("/login", response_model=SessionResponse | SecondFactorRequiredResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password.

    Admin accounts never receive a token here: a correct password yields
    {"require2fa": true} and the client must call /admin/verify-2fa next.
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.username, body.password)
    if result.require_2fa:
        payload = SecondFactorRequiredResponse()
    else:
        payload = SessionResponse.from_user(result.user, result.token)
    return _no_store(JSONResponse(content=payload.model_dump(mode="json")))


@limiter.limit(LOGIN_LIMIT)
@router.post("/admin/verify-2fa", response_model=SessionResponse)
def verify_second_factor(request: Request, body: SecondFactorRequest) -> JSONResponse:
    """Second half of admin login. Re-resolves the user; does not depend on a prior /login."""
    service: AuthService = request.app.state.auth_service
    user, token = service.verify_admin_second_factor(body.username, body.code)
    payload = SessionResponse.from_user(user, token)
    return _no_store(JSONResponse(content=payload.model_dump(mode="json")))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/me", response_model=MeResponse)
async def me(claims: SessionClaims = Depends(get_current_claims)) -> MeResponse:
    """Return the identity carried by the bearer token, as of its issuance."""
    return MeResponse(
        uid=claims.uid,
        role=claims.role,
        username=claims.username,
        phone=claims.phone,
        email=claims.email,
    )
