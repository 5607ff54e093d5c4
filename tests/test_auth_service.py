"""
tests/test_auth_service.py -- Unit tests for auth/service.py (AuthService).

Covers:
  - device_from_headers on plain dicts, mixed case, and missing user-agent
  - validate_user three-way result (NOT_FOUND raise / None / User); a store
    outage surfaces as the store error, not NOT_FOUND
  - create_user: hashing, duplicate email, missing data
  - local_signup: mismatch creates nothing, success mints a session,
    token failure still creates the account ("but not authenticated")
  - local_login and local_logout messages, logout failure enveloped
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from auth.service import AuthService, SignupData, device_from_headers
from core.errors import ApiError, ErrorKind
from users.service import UsersService

PASSWORD = "Sup3r$ecret"


def _signup(auth_service, email="ada@example.com", password=PASSWORD, match=PASSWORD, device="web"):
    return auth_service.local_signup({"user-agent": device}, SignupData(email, password, match))


# ---------------------------------------------------------------------------
# device_from_headers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "headers, device",
    [
        ({"user-agent": "Mozilla/5.0"}, "Mozilla/5.0"),
        ({"User-Agent": "curl/8.0"}, "curl/8.0"),
        ({}, ""),
    ],
)
def test_device_from_headers(headers, device):
    assert device_from_headers(headers) == device


# ---------------------------------------------------------------------------
# validate_user
# ---------------------------------------------------------------------------


class TestValidateUser:
    def test_unknown_email_raises_not_found(self, auth_service):
        with pytest.raises(ApiError) as exc_info:
            auth_service.validate_user("ghost@example.com", PASSWORD)
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert exc_info.value.message == "user ghost@example.com not found"

    def test_store_outage_raises_original_error(self, registry, settings):
        store = MagicMock()
        store.get_by_email.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
        service = AuthService(registry, UsersService(store), settings)

        with pytest.raises(OperationalError):
            service.validate_user("ada@example.com", PASSWORD)

    def test_wrong_password_returns_none(self, auth_service):
        auth_service.create_user({"email": "ada@example.com", "password": PASSWORD})
        assert auth_service.validate_user("ada@example.com", "wrong") is None

    def test_match_returns_user(self, auth_service):
        auth_service.create_user({"email": "ada@example.com", "password": PASSWORD})
        user = auth_service.validate_user("ada@example.com", PASSWORD)
        assert user is not None
        assert user.email == "ada@example.com"


# ---------------------------------------------------------------------------
# create_user
# ---------------------------------------------------------------------------


class TestCreateUser:
    def test_password_is_hashed(self, auth_service, user_store):
        result = auth_service.create_user({"email": "ada@example.com", "password": PASSWORD})
        assert result.success
        stored = user_store.get_by_email("ada@example.com")
        assert stored.password != PASSWORD
        assert stored.password.startswith("$2")

    def test_duplicate_email(self, auth_service):
        auth_service.create_user({"email": "ada@example.com", "password": PASSWORD})
        again = auth_service.create_user({"email": "ada@example.com", "password": PASSWORD})
        assert not again.success
        assert again.error.kind is ErrorKind.UNAUTHORIZED
        assert again.message == "Unauthorized: account already exists for ada@example.com"

    @pytest.mark.parametrize("data", [None, {}, {"email": "a@b.co"}, {"password": "x"}])
    def test_missing_data(self, auth_service, data):
        result = auth_service.create_user(data)
        assert not result.success
        assert result.message == "registration data must be provided"


# ---------------------------------------------------------------------------
# local_signup
# ---------------------------------------------------------------------------


class TestLocalSignup:
    def test_success_creates_and_authenticates(self, auth_service, registry):
        result = _signup(auth_service)
        assert result.success
        assert result.message == "user ada@example.com account successfully created and authenticated"
        assert result.data.access_token
        verified = registry.verify_token(result.data.access_token, "web")
        assert verified.decoded.email == "ada@example.com"

    def test_mismatch_creates_nothing(self, auth_service, user_store):
        result = _signup(auth_service, match="Different1!")
        assert not result.success
        assert result.error.kind is ErrorKind.BAD_REQUEST
        assert result.message == "password and confirmation password don't match"
        assert not user_store.has_users()

    def test_missing_field(self, auth_service):
        result = _signup(auth_service, match=None)
        assert not result.success
        assert result.error.kind is ErrorKind.EMPTY_INPUT

    def test_duplicate_becomes_bad_request(self, auth_service):
        _signup(auth_service)
        result = _signup(auth_service, device="phone")
        assert not result.success
        assert result.error.kind is ErrorKind.BAD_REQUEST
        assert result.message == "Unauthorized: account already exists for ada@example.com"

    def test_token_failure_keeps_account(self, registry, users_service, settings, user_store):
        registry.generate_token = MagicMock(side_effect=ConnectionError("cache down"))
        service = AuthService(registry, users_service, settings)

        result = _signup(service)
        assert result.success
        assert result.message == "user ada@example.com account successfully created but not authenticated"
        assert result.data.access_token is None
        assert user_store.get_by_email("ada@example.com") is not None


# ---------------------------------------------------------------------------
# local_login / local_logout
# ---------------------------------------------------------------------------


class TestLoginLogout:
    def test_login_mints_device_session(self, auth_service, registry):
        user = auth_service.create_user({"email": "ada@example.com", "password": PASSWORD}).data
        result = auth_service.local_login(user, {"user-agent": "phone"})
        assert result.success
        assert result.message == "user ada@example.com logged in"
        assert registry.get_single_session_from_cache(user.id, "phone") is not None

    def test_login_for_deleted_user(self, auth_service, user_store):
        user = auth_service.create_user({"email": "ada@example.com", "password": PASSWORD}).data
        user_store.delete_user(user.id)
        result = auth_service.local_login(user, {"user-agent": "web"})
        assert not result.success
        assert result.error.kind is ErrorKind.NOT_FOUND

    def test_logout_revokes(self, auth_service, registry):
        token = _signup(auth_service).data.access_token
        verified = registry.verify_token(token, "web")

        result = auth_service.local_logout(verified.session_id)
        assert result.success
        assert result.message == f"session {verified.session_id} logged out"
        with pytest.raises(ApiError):
            registry.verify_token(token, "web")

    def test_logout_cache_failure_is_enveloped(self, users_service, settings):
        sessions = MagicMock()
        sessions.delete_active_session_from_cache.side_effect = ConnectionError("cache down")
        result = AuthService(sessions, users_service, settings).local_logout("user:1:x")
        assert not result.success
        assert isinstance(result.error, ConnectionError)
        assert result.message == "cache down"
