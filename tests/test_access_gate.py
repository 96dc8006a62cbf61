"""Unit tests for auth/dependencies.py -- bearer authentication and role checks."""

from __future__ import annotations

import pytest

from auth.dependencies import authenticate_header, require_role
from auth.errors import AuthError, ForbiddenError, TokenError
from auth.models import Role, User
from auth.tokens import SessionIssuer, TokenConfig

USER = User(uid="u_1", username="alice", phone="15551234567")
ADMIN = User(uid="u_2", username="root", role=Role.admin, hashed_password="x", second_factor_secret="2006")


class TestAuthenticateHeader:
    def test_valid_bearer_token(self, issuer: SessionIssuer) -> None:
        claims = authenticate_header(f"Bearer {issuer.issue(USER)}", issuer)
        assert claims.uid == "u_1"
        assert claims.role == Role.user

    @pytest.mark.parametrize("header", [None, "", "Bearer", "Bearer ", "Token abc", "bearer abc", "Basic dXNlcjpwdw=="])
    def test_missing_or_wrong_scheme(self, issuer: SessionIssuer, header) -> None:
        with pytest.raises(AuthError) as exc_info:
            authenticate_header(header, issuer)
        assert not isinstance(exc_info.value, TokenError)

    def _failure(self, issuer: SessionIssuer, header: str) -> AuthError:
        with pytest.raises(AuthError) as exc_info:
            authenticate_header(header, issuer)
        return exc_info.value

    def test_token_failures_are_indistinguishable(self, issuer: SessionIssuer, clock) -> None:
        other = SessionIssuer(TokenConfig(secret_key="another-secret-key-with-at-least-32-chars"), clock)
        expired = issuer.issue(USER)
        clock.advance(days=8)

        failures = [
            self._failure(issuer, "Bearer not.a.token"),
            self._failure(issuer, f"Bearer {other.issue(USER)}"),
            self._failure(issuer, f"Bearer {expired}"),
            self._failure(issuer, None),
        ]
        assert {type(f) for f in failures} == {AuthError}
        assert {(f.status_code, f.code, f.message) for f in failures} == {(401, "unauthorized", "Unauthorized")}


class TestRequireRole:
    def test_matching_role_passes(self, issuer: SessionIssuer) -> None:
        claims = issuer.validate(issuer.issue(ADMIN))
        assert require_role(claims, Role.admin) is claims

    def test_mismatched_role_is_forbidden(self, issuer: SessionIssuer) -> None:
        claims = issuer.validate(issuer.issue(USER))
        with pytest.raises(ForbiddenError) as exc_info:
            require_role(claims, Role.admin)
        assert exc_info.value.status_code == 403

    def test_admin_is_not_a_user(self, issuer: SessionIssuer) -> None:
        claims = issuer.validate(issuer.issue(ADMIN))
        with pytest.raises(ForbiddenError):
            require_role(claims, Role.user)
