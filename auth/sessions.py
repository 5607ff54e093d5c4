"""
auth/sessions.py -- Session registry: binds signed tokens to cache entries.

Every issued token is paired with one cache entry

    key   = "user:<user_id>:<session_id>"
    value = {"token": <jwt>, "device": <user-agent>}
    ttl   = the token's lifetime

so the cache, not the token's own exp claim, is the authority on whether a
session is still live. Deleting the entry revokes the token immediately even
though its signature stays valid. A session is either absent or active; there
is no revoked-but-retained state.

The registry does not deduplicate by device. SessionLimitPolicy
(auth/limits.py) runs before sign-in for that.

Failures raise ApiError (or the cache backend's own exception) after being
logged. Service-layer callers catch them and build envelopes.

Layer rule: no imports from api/ or users/.
"""

from __future__ import annotations

import logging
import time
import uuid

from auth.models import CachedSession, TokenPayload, VerifiedSession, split_session_key
from auth.tokens import TokenCodec
from cache.store import CacheStore
from core.config import Settings
from core.errors import ApiError

logger = logging.getLogger("sessionauth.auth.sessions")


def user_key(user_id: int) -> str:
    return f"user:{user_id}"


class SessionRegistry:
    """Owns the user -> device -> cached token mapping.

    Usage:
        registry = SessionRegistry(cache, TokenCodec(settings.session_secret), settings)
        token = registry.generate_token(TokenPayload(id=1, email="a@b.com", device="web"))
        verified = registry.verify_token(token, "web")
        registry.delete_active_session_from_cache(verified.session_id)
    """

    def __init__(self, cache: CacheStore, codec: TokenCodec, settings: Settings) -> None:
        self.cache = cache
        self.codec = codec
        self.session_ttl = settings.session_expiry
        self.refresh_ttl = settings.refresh_expiry

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    def generate_token(self, payload: TokenPayload | None, refresh: bool = False) -> str:
        """Sign a token for payload and register its session in the cache.

        refresh=True uses the refresh TTL. payload.session_id, when set, is
        reused as the cache key suffix so a rotated token replaces its old
        entry instead of adding a second session.
        """
        try:
            if not payload:
                raise ApiError.empty("payload to generate auth token")

            expires_in = self.refresh_ttl if refresh else self.session_ttl
            token = self.codec.sign(payload, expires_in)

            self.post_session_to_cache(
                user_key(payload.id),
                token,
                payload.device,
                expires_in,
                session_id=payload.session_id,
            )
            return token
        except Exception as exc:
            logger.error("Token generation failed: %r", exc)
            raise

    def verify_token(self, token: str | None, device: str) -> VerifiedSession:
        """Verify a token and confirm its session is still registered for device.

        Raises:
            ApiError(EMPTY_INPUT)   token missing
            ApiError(BAD_REQUEST)   signature, structure, or expiry invalid
            ApiError(UNAUTHORIZED)  no live session for (user, device)
        """
        try:
            if not token:
                raise ApiError.empty("auth token")

            decoded = self.codec.verify(token)

            session = self.get_single_session_from_cache(decoded.id, device)
            if session is None:
                raise ApiError.unauthorized("jwt token is expired")

            return VerifiedSession(decoded=decoded, session_id=session.id)
        except Exception as exc:
            logger.error("Token verification failed: %r", exc)
            raise

    def rotate_if_expiring(self, verified: VerifiedSession, threshold: int, now: float | None = None) -> str | None:
        """Mint a refresh token when the verified token expires within threshold seconds.

        The new token reuses the session id, so it overwrites the existing
        cache entry (with the refresh TTL) rather than adding a session.
        Returns None when no rotation is due.
        """
        current = time.time() if now is None else now
        if verified.decoded.exp - current >= threshold:
            return None
        _, session_id = split_session_key(verified.session_id)
        logger.info("Rotating token for session %s", verified.session_id)
        return self.generate_token(verified.decoded.to_payload(session_id=session_id), refresh=True)

    # ------------------------------------------------------------------
    # Cache access
    # ------------------------------------------------------------------

    def post_session_to_cache(
        self,
        user_prefix: str,
        token: str,
        device: str,
        expires_in: int,
        session_id: str | None = None,
    ) -> str:
        """Write one session entry and return its cache key."""
        key = f"{user_prefix}:{session_id or uuid.uuid4()}"
        try:
            self.cache.set(key, {"token": token, "device": device}, expires_in)
        except Exception as exc:
            logger.error("Writing session %s failed: %r", key, exc)
            raise
        return key

    def get_single_session_from_cache(self, user_id: int, device: str) -> CachedSession | None:
        """Return the first active session of user_id whose device matches."""
        for session in self.get_active_sessions_from_cache(user_id):
            if session.device == device:
                return session
        return None

    def get_active_sessions_from_cache(self, user_id: int) -> list[CachedSession]:
        """Return every active session of user_id; [] when there are none.

        The scan pattern includes the trailing colon so user 1 never picks
        up the sessions of user 10.
        """
        try:
            keys = self.cache.keys(f"{user_key(user_id)}:*")
            if not keys:
                return []

            values = self.cache.mget(*keys)
            sessions: list[CachedSession] = []
            for key, value in zip(keys, values):
                # expired between the scan and the fetch
                if value is None:
                    continue
                sessions.append(CachedSession(id=key, device=value["device"], token=value["token"]))
            return sessions
        except Exception as exc:
            logger.error("Reading sessions for user %s failed: %r", user_id, exc)
            raise

    def delete_active_session_from_cache(self, session_key: str) -> None:
        """Revoke one session by cache key. Cache failures propagate."""
        try:
            self.cache.delete(session_key)
            logger.info("Session %s deleted", session_key)
        except Exception as exc:
            logger.error("Deleting session %s failed: %r", session_key, exc)
            raise

    def delete_all_sessions_from_cache(self, user_id: int) -> int:
        """Revoke every session of user_id. Returns the number deleted."""
        sessions = self.get_active_sessions_from_cache(user_id)
        for session in sessions:
            self.delete_active_session_from_cache(session.id)
        return len(sessions)
