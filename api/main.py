"""
api/main.py -- FastAPI application entry point for PhotoAuth.

Run with:      uvicorn api.main:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the auth components once and hangs them on app.state:
  app.state.user_store      UserStore (SQLAlchemy)
  app.state.session_issuer  SessionIssuer (read by the AccessGate dependencies)
  app.state.auth_service    AuthService (read by the route handlers)
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.admin import router as admin_router
from api.routes.auth import router as auth_router
from auth.challenges import ChallengeStore
from auth.delivery import CodeSender, LogCodeSender
from auth.errors import AuthServiceError
from auth.identity import IdentityResolver
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import SessionIssuer, TokenConfig
from core.clock import Clock, SystemClock
from core.config import Settings, get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("photoauth.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_auth_service(
    settings: Settings,
    user_store: UserStore,
    clock: Clock,
    sender: CodeSender,
) -> AuthService:
    """Assemble the auth components from one Settings instance.

    Shared by the lifespan, the CLI and the test fixtures so all three wire
    things identically.
    """
    challenges = ChallengeStore(
        clock=clock,
        ttl_seconds=settings.otp_ttl_seconds,
        max_attempts=settings.otp_max_attempts,
    )
    issuer = SessionIssuer(TokenConfig.from_settings(settings), clock)
    return AuthService(challenges, IdentityResolver(user_store), issuer, sender)


def attach_auth_state(app: FastAPI, user_store: UserStore, service: AuthService) -> None:
    app.state.user_store = user_store
    app.state.auth_service = service
    app.state.session_issuer = service.issuer


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Pending OTP challenges live only in memory and die with the
    process.
    """
    logger.info("PhotoAuth API starting up")
    user_store = UserStore(_settings.database_url)
    service = build_auth_service(_settings, user_store, SystemClock(), LogCodeSender())
    attach_auth_state(app, user_store, service)

    if _settings.bootstrap_admin_configured:
        service.ensure_admin(
            _settings.bootstrap_admin_username,
            _settings.bootstrap_admin_password,
            _settings.bootstrap_admin_second_factor,
        )
    logger.info("Auth initialized (session lifetime=%ds)", service.issuer.lifetime_seconds)

    yield

    app.state.user_store.close()
    logger.info("PhotoAuth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="PhotoAuth API",
    description="Phone and password sign-in with signed session tokens for the photo-sharing service.",
    version=__version__,
    lifespan=lifespan,
)

# Register in the order the request should encounter them: TrustedHost -> CORS -> SlowAPI.
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(admin_router, tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope, {"error", "code"}.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message, code=code).model_dump(),
    )


@app.exception_handler(AuthServiceError)
async def auth_service_error_handler(request: Request, exc: AuthServiceError) -> JSONResponse:
    """Map the auth/ error taxonomy onto HTTP statuses."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.code)
    return _error(exc.status_code, exc.message, exc.code)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests.", "rate_limited")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or ill-typed body fields are a 400, like any other bad input."""
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    message = f"Missing or invalid fields: {', '.join(f for f in fields if f)}" if fields else "Invalid request."
    return _error(400, message, "validation_error")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Covers FastAPI's HTTPException and the router's own 404 and 405 responses."""
    response = _error(exc.status_code, str(exc.detail), f"http_{exc.status_code}")
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.", "internal_error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit: probes from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=__version__)
