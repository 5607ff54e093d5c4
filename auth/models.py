"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data containers). The only helper here parses the
session cache key format. Stores, the session registry and routes do the work.

Layer rule: no imports from api/, users/, or cache/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """An identity record owned by the relational user store.

    password is always a bcrypt hash; plaintext exists only inside
    hash_password() at creation time.
    """

    id: int
    email: str
    password: str
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class UserWithToken(User):
    access_token: str | None = None

    @classmethod
    def from_user(cls, user: User, access_token: str | None) -> UserWithToken:
        return cls(
            id=user.id,
            email=user.email,
            password=user.password,
            created_at=user.created_at,
            updated_at=user.updated_at,
            access_token=access_token,
        )


@dataclass
class TokenPayload:
    """Claims signed into a session JWT.

    device is the raw user-agent string of the client that signed in.
    session_id is only set on refresh, so the rotated token keeps the cache
    key of the session it replaces.
    """

    id: int
    email: str
    device: str
    session_id: str | None = None

    def claims(self) -> dict:
        claims = {"id": self.id, "email": self.email, "device": self.device}
        if self.session_id:
            claims["session_id"] = self.session_id
        return claims


@dataclass
class DecodedToken(TokenPayload):
    iat: int = 0
    exp: int = 0

    def to_payload(self, session_id: str | None = None) -> TokenPayload:
        return TokenPayload(id=self.id, email=self.email, device=self.device, session_id=session_id)


def split_session_key(key: str) -> tuple[int, str]:
    """Split a "user:<user_id>:<session_id>" cache key into (user_id, session_id)."""
    _, user_id, session_id = key.split(":", 2)
    return int(user_id), session_id


@dataclass
class CachedSession:
    """One active device session as stored in the cache.

    id is the full cache key, "user:<user_id>:<session_id>".
    """

    id: str
    device: str
    token: str

    @property
    def session_id(self) -> str:
        return split_session_key(self.id)[1]

    @property
    def user_id(self) -> int:
        return split_session_key(self.id)[0]


@dataclass
class VerifiedSession:
    """Result of a successful token verification."""

    decoded: DecodedToken
    session_id: str  # cache key of the matching session
