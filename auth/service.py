"""
auth/service.py -- Credential validation and local signup/login/logout.

AuthService is a thin orchestrator: the users service owns persistence, the
session registry owns tokens and cache entries. Public methods return an
ApiResponse envelope, except validate_user() which keeps a three-way result:

    user does not exist -> raises ApiError(NOT_FOUND)
    wrong password      -> returns None
    match               -> returns the User

so the sign-in route can tell "no such account" from "bad credentials".
A store outage during the lookup raises the store's own exception.

Layer rule: no imports from api/. Import from users/ and core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from auth.models import TokenPayload, User, UserWithToken
from auth.sessions import SessionRegistry
from auth.tokens import hash_password, verify_password
from core.config import Settings
from core.errors import ApiError
from core.response import ApiResponse
from users.service import UsersService

logger = logging.getLogger("sessionauth.auth")


def device_from_headers(headers: Mapping[str, str]) -> str:
    """Device identifier for a request: its user-agent header, or "" if absent.

    Works on plain dicts and Starlette's case-insensitive Headers alike.
    """
    value = headers.get("user-agent")
    if value is None:
        value = headers.get("User-Agent", "")
    return value or ""


@dataclass
class SignupData:
    email: str | None
    password: str | None
    password_match: str | None


class AuthService:
    def __init__(self, sessions: SessionRegistry, users: UsersService, settings: Settings) -> None:
        self.sessions = sessions
        self.users = users
        self.bcrypt_rounds = settings.bcrypt_rounds

    def validate_user(self, email: str, password: str) -> User | None:
        """Check credentials. Raises ApiError(NOT_FOUND) when no user has this email.

        The NOT_FOUND error comes from the users service ("user <email> not
        found"). Any other lookup failure, such as a store outage, is re-raised
        as the original exception rather than reported as a missing user.
        """
        found = self.users.get_user_by_email(email)
        if not found.success:
            raise found.error

        if verify_password(password, found.data.password):
            return found.data
        return None

    def create_user(self, data: dict | None) -> ApiResponse[User]:
        """Create a local account from {email, password}, hashing the password."""
        try:
            if not data or not data.get("email") or not data.get("password"):
                raise ApiError.empty("registration data")

            email = data["email"]
            existing = self.users.get_user_by_email(email)
            if existing.success:
                return ApiResponse.fail(ApiError.unauthorized(f"account already exists for {existing.data.email}"))

            hashed = hash_password(data["password"], rounds=self.bcrypt_rounds)
            return self.users.create_user({"email": email, "password": hashed})
        except Exception as exc:
            logger.exception("User creation failed")
            return ApiResponse.from_exception(exc)

    def local_signup(self, headers: Mapping[str, str], data: SignupData) -> ApiResponse[UserWithToken]:
        """Create an account and sign it in on the requesting device."""
        try:
            if not data.email or not data.password or not data.password_match:
                raise ApiError.empty("registration data")

            if data.password != data.password_match:
                return ApiResponse.fail(ApiError.bad_request("password and confirmation password don't match"))

            created = self.create_user({"email": data.email, "password": data.password})
            if not created.success:
                return ApiResponse.fail(ApiError.bad_request(created.message))

            login = self.local_login(created.data, headers)
            access_token = login.data.access_token if login.success else None
            outcome = "and authenticated" if access_token else "but not authenticated"

            return ApiResponse.ok(
                UserWithToken.from_user(created.data, access_token),
                f"user {created.data.email} account successfully created {outcome}",
            )
        except Exception as exc:
            return ApiResponse.fail(exc)

    def local_login(self, user: User, headers: Mapping[str, str]) -> ApiResponse[UserWithToken]:
        """Mint a session token for an already-validated user."""
        try:
            payload = TokenPayload(id=user.id, email=user.email, device=device_from_headers(headers))

            current = self.users.get_user_by_id(payload.id)
            if not current.success:
                return ApiResponse.fail(current.error)

            access_token = self.sessions.generate_token(payload)
            logger.info("User %d signed in on %r", payload.id, payload.device)

            return ApiResponse.ok(
                UserWithToken.from_user(current.data, access_token),
                f"user {payload.email} logged in",
            )
        except Exception as exc:
            return ApiResponse.fail(exc)

    def local_logout(self, session_id: str) -> ApiResponse[None]:
        """Delete one session. Cache failures come back inside the envelope."""
        try:
            self.sessions.delete_active_session_from_cache(session_id)
            return ApiResponse.ok(None, f"session {session_id} logged out")
        except Exception as exc:
            return ApiResponse.fail(exc)
