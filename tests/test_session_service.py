"""
Unit tests for auth/session.py -- the session-token lifecycle.

Covers:
- login happy path and the concrete a@x.com / secret1 scenario
- enumeration resistance: unknown email == inactive account == wrong password
- no refresh token is written on failed login
- refresh reuses the token, re-reads the user, and rejects expired/deleted tokens
- logout idempotence
- current_user resolves by subject id, never by email
- ValidationError before any storage access
"""

from __future__ import annotations

import pytest

from auth.errors import (
    InactiveUser,
    InvalidCredentials,
    InvalidToken,
    StorageError,
    UserNotFound,
    ValidationError,
)
from auth.models import AccessClaims
from auth.session import SessionService
from auth.store import RefreshTokenStore, UserStore

# Seeded by the seeded_users fixture in conftest.py.
ACTIVE_EMAIL = "a@x.com"
ACTIVE_PASSWORD = "secret1"
INACTIVE_EMAIL = "inactive@x.com"
INACTIVE_PASSWORD = "secret2"


def _error_signature(exc) -> tuple:
    return type(exc), exc.code, exc.message, exc.status_code


class TestLogin:
    def test_login_returns_tokens_and_public_user(self, service: SessionService, seeded_users: dict) -> None:
        result = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        assert result.access_token
        assert result.refresh_token
        assert result.expires_in == 3600
        assert result.user.email == ACTIVE_EMAIL
        assert result.user.id == seeded_users["active"]
        assert not hasattr(result.user, "password_hash")

    def test_access_token_carries_identity(self, service: SessionService, seeded_users: dict) -> None:
        result = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        claims = service.codec.verify(result.access_token)
        assert claims.subject_id == seeded_users["active"]
        assert claims.email == ACTIVE_EMAIL
        assert claims.profile == "INVESTOR"

    def test_login_creates_refresh_record(
        self, service: SessionService, refresh_tokens: RefreshTokenStore, seeded_users: dict
    ) -> None:
        result = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        record = refresh_tokens.find(result.refresh_token)
        assert record is not None
        assert record.user_id == seeded_users["active"]

    def test_repeated_logins_create_independent_tokens(
        self, service: SessionService, refresh_tokens: RefreshTokenStore, seeded_users: dict
    ) -> None:
        first = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        second = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        assert first.refresh_token != second.refresh_token
        assert service.refresh(first.refresh_token).user.email == ACTIVE_EMAIL
        assert refresh_tokens.count_for_user(seeded_users["active"]) == 2

    def test_email_whitespace_is_stripped(self, service: SessionService, seeded_users: dict) -> None:
        assert service.login(f"  {ACTIVE_EMAIL} ", ACTIVE_PASSWORD).user.email == ACTIVE_EMAIL

    def test_wrong_password(
        self, service: SessionService, refresh_tokens: RefreshTokenStore, seeded_users: dict
    ) -> None:
        with pytest.raises(InvalidCredentials) as excinfo:
            service.login(ACTIVE_EMAIL, "wrong-password")
        assert excinfo.value.status_code == 401
        assert refresh_tokens.count_for_user(seeded_users["active"]) == 0

    def test_inactive_user_rejected_even_with_correct_password(
        self, service: SessionService, refresh_tokens: RefreshTokenStore, seeded_users: dict
    ) -> None:
        with pytest.raises(InvalidCredentials):
            service.login(INACTIVE_EMAIL, INACTIVE_PASSWORD)
        assert refresh_tokens.count_for_user(seeded_users["inactive"]) == 0

    def test_unknown_email_matches_wrong_password(self, service: SessionService, seeded_users: dict) -> None:
        """No user-enumeration oracle: all three failures are the same error."""
        signatures = set()
        for email, password in [
            ("nobody@x.com", ACTIVE_PASSWORD),
            (ACTIVE_EMAIL, "wrong-password"),
            (INACTIVE_EMAIL, INACTIVE_PASSWORD),
        ]:
            with pytest.raises(InvalidCredentials) as excinfo:
                service.login(email, password)
            signatures.add(_error_signature(excinfo.value))
        assert len(signatures) == 1

    def test_unknown_email_still_runs_bcrypt(self, service: SessionService, monkeypatch) -> None:
        calls = []
        original = service.hasher.verify
        monkeypatch.setattr(service.hasher, "verify", lambda p, h: calls.append(h) or original(p, h))
        with pytest.raises(InvalidCredentials):
            service.login("nobody@x.com", "whatever")
        assert calls == [service.hasher.dummy_hash]

    @pytest.mark.parametrize(
        "email,password",
        [
            ("", "secret1"),
            ("not-an-email", "secret1"),
            ("a@x", "secret1"),
            (None, "secret1"),
            (ACTIVE_EMAIL, ""),
            (ACTIVE_EMAIL, None),
            (ACTIVE_EMAIL, 12345),
            (ACTIVE_EMAIL, "p" * 65),
        ],
    )
    def test_malformed_input(self, service: SessionService, monkeypatch, email, password) -> None:
        def no_storage(*args, **kwargs):
            raise AssertionError("storage touched during validation")

        monkeypatch.setattr(service.users, "get_by_email", no_storage)
        with pytest.raises(ValidationError) as excinfo:
            service.login(email, password)
        assert excinfo.value.status_code == 400


class TestRefresh:
    def test_refresh_issues_new_access_token(self, service: SessionService, seeded_users: dict) -> None:
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        result = service.refresh(login.refresh_token)
        assert result.access_token
        assert service.codec.verify(result.access_token).email == ACTIVE_EMAIL
        assert result.user.email == ACTIVE_EMAIL

    def test_refresh_token_is_not_rotated(
        self, service: SessionService, refresh_tokens: RefreshTokenStore, seeded_users: dict
    ) -> None:
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        service.refresh(login.refresh_token)
        service.refresh(login.refresh_token)
        assert refresh_tokens.find(login.refresh_token) is not None
        assert refresh_tokens.count_for_user(seeded_users["active"]) == 1

    def test_refresh_rereads_user(self, service: SessionService, users: UserStore, seeded_users: dict) -> None:
        """Profile changes after login show up in the refreshed token."""
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        users.update_user(seeded_users["active"], profile="ADMINISTRATOR", email="new@x.com")
        result = service.refresh(login.refresh_token)
        claims = service.codec.verify(result.access_token)
        assert claims.profile == "ADMINISTRATOR"
        assert claims.email == "new@x.com"

    def test_unknown_token(self, service: SessionService) -> None:
        with pytest.raises(InvalidToken):
            service.refresh("f" * 64)

    def test_expired_token(self, service: SessionService, clock, seeded_users: dict) -> None:
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        clock.advance(days=7)
        with pytest.raises(InvalidToken):
            service.refresh(login.refresh_token)

    def test_expired_and_logged_out_fail_identically(self, service: SessionService, clock, seeded_users: dict) -> None:
        expired = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD).refresh_token
        clock.advance(days=7)
        logged_out = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD).refresh_token
        service.logout(logged_out)

        signatures = set()
        for token in (expired, logged_out):
            with pytest.raises(InvalidToken) as excinfo:
                service.refresh(token)
            signatures.add(_error_signature(excinfo.value))
        assert len(signatures) == 1

    def test_inactive_owner(self, service: SessionService, users: UserStore, seeded_users: dict) -> None:
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        users.update_user(seeded_users["active"], is_active=False)
        with pytest.raises(InactiveUser) as excinfo:
            service.refresh(login.refresh_token)
        assert excinfo.value.status_code == 401

    def test_deleted_owner(self, service: SessionService, refresh_tokens: RefreshTokenStore) -> None:
        token = refresh_tokens.create("ghost-user")
        with pytest.raises(InvalidToken):
            service.refresh(token)

    @pytest.mark.parametrize("token", ["", "   ", None])
    def test_missing_token(self, service: SessionService, token) -> None:
        with pytest.raises(ValidationError):
            service.refresh(token)


class TestLogout:
    def test_logout_then_refresh_fails(self, service: SessionService, seeded_users: dict) -> None:
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        assert service.logout(login.refresh_token) is True
        with pytest.raises(InvalidToken):
            service.refresh(login.refresh_token)

    def test_logout_is_idempotent(self, service: SessionService, seeded_users: dict) -> None:
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        service.logout(login.refresh_token)
        assert service.logout(login.refresh_token) is False

    def test_logout_unknown_token_is_not_an_error(self, service: SessionService) -> None:
        assert service.logout("never-issued") is False

    def test_logout_leaves_other_sessions(self, service: SessionService, seeded_users: dict) -> None:
        phone = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        laptop = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        service.logout(phone.refresh_token)
        assert service.refresh(laptop.refresh_token).user.email == ACTIVE_EMAIL

    def test_logout_requires_token(self, service: SessionService) -> None:
        with pytest.raises(ValidationError):
            service.logout("")


class TestCurrentUser:
    def _claims(self, service: SessionService, subject_id: str, email: str) -> AccessClaims:
        return service.codec.verify(service.codec.issue(subject_id, email, "INVESTOR"))

    def test_resolves_by_subject_id(self, service: SessionService, users: UserStore, seeded_users: dict) -> None:
        """Email in the token is stale after a change; lookup still succeeds by id."""
        claims = self._claims(service, seeded_users["active"], ACTIVE_EMAIL)
        users.update_user(seeded_users["active"], email="renamed@x.com")
        assert service.current_user(claims).email == "renamed@x.com"

    def test_ignores_email_claim(self, service: SessionService, seeded_users: dict) -> None:
        claims = self._claims(service, "no-such-id", ACTIVE_EMAIL)
        with pytest.raises(UserNotFound) as excinfo:
            service.current_user(claims)
        assert excinfo.value.status_code == 401

    def test_inactive_user(self, service: SessionService, seeded_users: dict) -> None:
        claims = self._claims(service, seeded_users["inactive"], INACTIVE_EMAIL)
        with pytest.raises(InactiveUser) as excinfo:
            service.current_user(claims)
        assert excinfo.value.status_code == 401

    def test_from_token(self, service: SessionService, seeded_users: dict) -> None:
        login = service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
        assert service.current_user_from_token(login.access_token).id == seeded_users["active"]

    def test_from_bad_token(self, service: SessionService) -> None:
        with pytest.raises(InvalidToken):
            service.current_user_from_token("garbage")


class TestStoragePropagation:
    def test_storage_error_propagates_unchanged(self, service: SessionService, monkeypatch) -> None:
        def down(*args, **kwargs):
            raise StorageError()

        monkeypatch.setattr(service.users, "get_by_email", down)
        with pytest.raises(StorageError):
            service.login(ACTIVE_EMAIL, ACTIVE_PASSWORD)
