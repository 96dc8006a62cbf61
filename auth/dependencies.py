"""
auth/dependencies.py -- AccessGate: bearer-token authentication and role checks.

Request lifecycle:
  Unauthenticated --authenticate_header()--> Authenticated --require_role()--> RoleChecked

authenticate_header() and require_role() are plain functions so they can be
tested without a request. get_current_claims() and require_admin() wrap them
as FastAPI Depends() helpers, pulling the SessionIssuer from app.state.

Every authentication failure (no header, wrong scheme, malformed token, bad
signature, expired) becomes the same AuthError("Unauthorized"). The specific
cause is logged at DEBUG and never reaches the client.

Role checks compare the role claim only. The user record is not consulted, so
a token issued before a ban or demotion keeps working until it expires.

Layer rule: may import from fastapi (Request) because this module is part of
the dependency injection system; no imports from api/.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from auth.errors import AuthError, ForbiddenError, TokenError
from auth.models import Role, SessionClaims
from auth.tokens import SessionIssuer

logger = logging.getLogger("photoauth.auth.gate")

_BEARER_PREFIX = "Bearer "


def authenticate_header(raw_header: Optional[str], issuer: SessionIssuer) -> SessionClaims:
    """Validate an Authorization header value and return the token's claims."""
    if not raw_header or not raw_header.startswith(_BEARER_PREFIX):
        logger.debug("Rejected request: missing or non-bearer Authorization header")
        raise AuthError()
    token = raw_header[len(_BEARER_PREFIX) :].strip()
    if not token:
        logger.debug("Rejected request: empty bearer token")
        raise AuthError()
    try:
        return issuer.validate(token)
    except TokenError as exc:
        logger.debug("Rejected request: %s", exc.message)
        raise AuthError() from exc


def require_role(claims: SessionClaims, role: Role) -> SessionClaims:
    """Raise ForbiddenError unless the claim set carries role."""
    if claims.role != role:
        logger.info("Role %s required, uid=%s has %s", role.value, claims.uid, claims.role.value)
        raise ForbiddenError()
    return claims


def get_current_claims(request: Request) -> SessionClaims:
    """Require authentication. Raises AuthError (401) if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: SessionClaims = Depends(get_current_claims)): ...
    """
    issuer: SessionIssuer = request.app.state.session_issuer
    return authenticate_header(request.headers.get("Authorization"), issuer)


def require_admin(request: Request) -> SessionClaims:
    """Require the admin role. Raises AuthError (401) if unauthenticated, ForbiddenError (403) if not admin."""
    return require_role(get_current_claims(request), Role.admin)
