"""
users/service.py -- Envelope-returning user CRUD over the user store.

Every method returns ApiResponse and never raises: ApiError failures keep
their kind, anything else (a database outage) is wrapped by the catch-all
from_exception() path with the original exception object preserved.

The service stores whatever password value it is given. Hashing happens one
layer up in AuthService.create_user(), so this module never sees plaintext.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import User
from auth.store import UserStore
from core.errors import ApiError
from core.response import ApiResponse

logger = logging.getLogger("sessionauth.users")


class UsersService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def get_all_users(self) -> ApiResponse[list[User]]:
        try:
            users = self.store.list_users()
            return ApiResponse.ok(users, "All users retrieved successfully")
        except SQLAlchemyError as exc:
            logger.exception("Listing users failed")
            return ApiResponse.from_exception(exc)

    def get_user_by_id(self, user_id: int | None) -> ApiResponse[User]:
        try:
            if user_id is None:
                raise ApiError.empty("id")
            user = self.store.get_by_id(user_id)
            if user is None:
                raise ApiError.not_found(f"user {user_id}")
            return ApiResponse.ok(user, f"user {user_id} retrieved successfully")
        except (ApiError, SQLAlchemyError) as exc:
            return ApiResponse.from_exception(exc)

    def get_user_by_email(self, email: str | None) -> ApiResponse[User]:
        try:
            if not email:
                raise ApiError.empty("email")
            user = self.store.get_by_email(email)
            if user is None:
                raise ApiError.not_found(f"user {email}")
            return ApiResponse.ok(user, f"user {email} retrieved successfully")
        except (ApiError, SQLAlchemyError) as exc:
            return ApiResponse.from_exception(exc)

    def create_user(self, data: dict | None) -> ApiResponse[User]:
        """Persist {email, password}. password must already be hashed."""
        try:
            if not data:
                raise ApiError.empty("registration data")
            email = data["email"]

            existing = self.get_user_by_email(email)
            if existing.success:
                raise ApiError.unauthorized(f"account already exists for {existing.data.email}")

            try:
                user = self.store.create_user(email, data["password"])
            except IntegrityError as exc:
                # a concurrent signup for the same email won the insert
                raise ApiError.unauthorized(f"account already exists for {email}") from exc

            logger.info("Created user %d (%s)", user.id, user.email)
            return ApiResponse.ok(user, f"user {user.email} created successfully")
        except (ApiError, SQLAlchemyError, KeyError) as exc:
            return ApiResponse.from_exception(exc)

    def edit_user(self, user_id: int | None, data: dict | None = None) -> ApiResponse[User]:
        try:
            if user_id is None:
                raise ApiError.empty("id")

            current = self.get_user_by_id(user_id)
            if not current.success:
                return current

            changes = {k: v for k, v in (data or {}).items() if v is not None}
            if not changes:
                return ApiResponse.ok(current.data, f"user {user_id} successfully modified")

            try:
                user = self.store.update_user(user_id, **changes)
            except IntegrityError as exc:
                raise ApiError.unauthorized(f"account already exists for {changes.get('email')}") from exc
            if user is None:
                raise ApiError.not_found(f"user {user_id}")
            return ApiResponse.ok(user, f"user {user_id} successfully modified")
        except (ApiError, SQLAlchemyError, ValueError) as exc:
            return ApiResponse.from_exception(exc)

    def delete_user(self, user_id: int | None) -> ApiResponse[None]:
        try:
            if user_id is None:
                raise ApiError.empty("id")

            current = self.get_user_by_id(user_id)
            if not current.success:
                return ApiResponse.from_exception(current.error)

            self.store.delete_user(user_id)
            logger.info("Deleted user %d", user_id)
            return ApiResponse.ok(None, f"user {user_id} deleted successfully")
        except (ApiError, SQLAlchemyError) as exc:
            return ApiResponse.from_exception(exc)
