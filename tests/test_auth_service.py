"""Unit tests for auth/service.py -- the login protocols end to end, without HTTP.

Covers:
- Phone path: send_otp -> verify_otp, first login creates the account
- Password path: unknown user and wrong password are indistinguishable
- Banned accounts are refused before the password is even checked
- Admin password login never yields a token; the second factor does
- Admin bootstrap is idempotent
- Moderation refuses self-ban and self-delete
"""

from __future__ import annotations

import pytest

from auth.errors import (
    AccountBannedError,
    AuthError,
    InvalidCredentialsError,
    NotFoundError,
    UsernameRequiredError,
    UsernameTakenError,
    ValidationError,
)
from auth.models import Role
from auth.service import AuthService

PHONE = "15551234567"


def _register(service: AuthService, username: str = "alice", password: str = "s3cret-pass") -> None:
    service.register(username, password, f"{username}@example.com")


class TestPhoneLogin:
    def test_send_otp_delivers_code(self, service: AuthService, sender) -> None:
        phone, code = service.send_otp(" +1 555 123 4567 ")
        assert phone == "+15551234567"
        assert sender.sent == [(phone, code)]

    def test_send_otp_rejects_bad_phone(self, service: AuthService, sender) -> None:
        with pytest.raises(ValidationError):
            service.send_otp("not-a-phone")
        assert sender.sent == []

    def test_first_login_creates_user(self, service: AuthService, sender) -> None:
        service.send_otp(PHONE)
        user, token = service.verify_otp(PHONE, sender.last_code(PHONE), "alice")
        assert user.phone == PHONE
        assert user.role == Role.user
        claims = service.issuer.validate(token)
        assert claims.uid == user.uid
        assert claims.phone == PHONE

    def test_returning_user_keeps_uid(self, service: AuthService, sender) -> None:
        service.send_otp(PHONE)
        first, _ = service.verify_otp(PHONE, sender.last_code(PHONE), "alice")
        service.send_otp(PHONE)
        again, _ = service.verify_otp(PHONE, sender.last_code(PHONE))
        assert again.uid == first.uid

    def test_new_phone_without_username(self, service: AuthService, sender) -> None:
        service.send_otp(PHONE)
        with pytest.raises(UsernameRequiredError):
            service.verify_otp(PHONE, sender.last_code(PHONE))

    @pytest.mark.parametrize("phone, code", [(None, "123456"), (PHONE, None), ("", ""), (PHONE, "")])
    def test_missing_fields(self, service: AuthService, phone, code) -> None:
        with pytest.raises(ValidationError) as exc_info:
            service.verify_otp(phone, code, "alice")
        assert exc_info.value.message == "Missing phone or OTP"

    def test_failure_reasons_are_specific(self, service: AuthService, sender, clock) -> None:
        with pytest.raises(ValidationError) as exc_info:
            service.verify_otp(PHONE, "123456", "alice")
        assert exc_info.value.code == "otp_not_found"

        service.send_otp(PHONE)
        code = sender.last_code(PHONE)
        bad = "000000" if code != "000000" else "111111"
        with pytest.raises(ValidationError) as exc_info:
            service.verify_otp(PHONE, bad, "alice")
        assert exc_info.value.message == "Invalid OTP"

        clock.advance(minutes=6)
        with pytest.raises(ValidationError) as exc_info:
            service.verify_otp(PHONE, code, "alice")
        assert exc_info.value.code == "otp_expired"

    def test_exhausted_challenge(self, service: AuthService, sender) -> None:
        service.send_otp(PHONE)
        code = sender.last_code(PHONE)
        bad = "000000" if code != "000000" else "111111"
        for _ in range(3):
            with pytest.raises(ValidationError):
                service.verify_otp(PHONE, bad, "alice")
        with pytest.raises(ValidationError) as exc_info:
            service.verify_otp(PHONE, code, "alice")
        assert exc_info.value.message == "Too many attempts"

    def test_banned_phone_user_gets_no_token(self, service: AuthService, sender) -> None:
        service.send_otp(PHONE)
        user, _ = service.verify_otp(PHONE, sender.last_code(PHONE), "alice")
        service.identities.set_banned(user.uid, True)
        service.send_otp(PHONE)
        with pytest.raises(AccountBannedError):
            service.verify_otp(PHONE, sender.last_code(PHONE))


class TestPasswordLogin:
    def test_register_then_login(self, service: AuthService) -> None:
        _register(service)
        result = service.login("alice", "s3cret-pass")
        assert result.require_2fa is False
        assert service.issuer.validate(result.token).username == "alice"

    def test_register_duplicate_username(self, service: AuthService) -> None:
        _register(service)
        with pytest.raises(UsernameTakenError):
            service.register("alice", "other-pass", "other@example.com")

    def test_register_requires_fields(self, service: AuthService) -> None:
        with pytest.raises(ValidationError):
            service.register("", "pw")
        with pytest.raises(ValidationError):
            service.register("bob", "")

    def test_unknown_user_and_wrong_password_look_the_same(self, service: AuthService) -> None:
        _register(service)
        with pytest.raises(InvalidCredentialsError) as unknown:
            service.login("nobody", "s3cret-pass")
        with pytest.raises(InvalidCredentialsError) as wrong:
            service.login("alice", "wrong-pass")
        assert (unknown.value.status_code, unknown.value.code, unknown.value.message) == (
            wrong.value.status_code,
            wrong.value.code,
            wrong.value.message,
        )

    def test_phone_account_cannot_password_login(self, service: AuthService, sender) -> None:
        service.send_otp(PHONE)
        service.verify_otp(PHONE, sender.last_code(PHONE), "phoney")
        with pytest.raises(InvalidCredentialsError):
            service.login("phoney", "anything")

    def test_banned_user_refused_before_password(self, service: AuthService) -> None:
        _register(service)
        user = service.identities.resolve_by_username("alice")
        service.identities.set_banned(user.uid, True)
        with pytest.raises(AccountBannedError):
            service.login("alice", "s3cret-pass")
        with pytest.raises(AccountBannedError):
            service.login("alice", "wrong-pass")


class TestAdminSecondFactor:
    @pytest.fixture
    def admin(self, service: AuthService):
        return service.ensure_admin("root", "adminpass123", "2006")

    def test_admin_login_never_returns_token(self, service: AuthService, admin) -> None:
        result = service.login("root", "adminpass123")
        assert result.require_2fa is True
        assert result.token is None

    def test_second_factor_issues_admin_token(self, service: AuthService, admin) -> None:
        user, token = service.verify_admin_second_factor("root", "2006")
        assert user.uid == admin.uid
        assert service.issuer.validate(token).role == Role.admin

    @pytest.mark.parametrize("username, code", [("root", "2007"), ("root", ""), ("nobody", "2006")])
    def test_second_factor_failures(self, service: AuthService, admin, username, code) -> None:
        with pytest.raises(AuthError) as exc_info:
            service.verify_admin_second_factor(username, code)
        assert exc_info.value.code == "invalid_second_factor"
        assert exc_info.value.message == "Invalid user or code"

    def test_regular_user_cannot_use_second_factor(self, service: AuthService, admin) -> None:
        _register(service)
        with pytest.raises(AuthError):
            service.verify_admin_second_factor("alice", "2006")

    def test_banned_admin_second_factor(self, service: AuthService, admin) -> None:
        service.identities.set_banned(admin.uid, True)
        with pytest.raises(AccountBannedError):
            service.verify_admin_second_factor("root", "2006")

    def test_ensure_admin_is_idempotent(self, service: AuthService, admin) -> None:
        again = service.ensure_admin("root", "different-password", "9999")
        assert again.uid == admin.uid
        assert len(service.list_users()) == 1
        # The first secret still applies.
        service.verify_admin_second_factor("root", "2006")

    def test_ensure_admin_refuses_existing_regular_user(self, service: AuthService) -> None:
        _register(service)
        with pytest.raises(ValidationError):
            service.ensure_admin("alice", "adminpass123", "2006")


class TestModeration:
    def test_cannot_ban_self(self, service: AuthService) -> None:
        admin = service.ensure_admin("root", "adminpass123", "2006")
        with pytest.raises(ValidationError):
            service.set_banned(admin.uid, True, acting_uid=admin.uid)

    def test_cannot_delete_self(self, service: AuthService) -> None:
        admin = service.ensure_admin("root", "adminpass123", "2006")
        with pytest.raises(ValidationError):
            service.delete_user(admin.uid, acting_uid=admin.uid)

    def test_ban_and_delete_other_user(self, service: AuthService) -> None:
        admin = service.ensure_admin("root", "adminpass123", "2006")
        _register(service)
        alice = service.identities.resolve_by_username("alice")
        assert service.set_banned(alice.uid, True, acting_uid=admin.uid).banned is True
        assert service.delete_user(alice.uid, acting_uid=admin.uid).username == "alice"
        with pytest.raises(NotFoundError):
            service.identities.resolve_by_uid(alice.uid)
