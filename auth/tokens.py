"""
auth/tokens.py -- JWT codec, password hashing, and API key comparison.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry id, email, device (and the
       session id on refresh) plus iat/exp. TokenCodec.verify() raises
       ApiError(BAD_REQUEST) on any failure -- tampered signature, malformed
       structure, or an exp claim already in the past. python-jose checks exp
       during decode, so an expired token never reaches the session registry.

  Passwords: bcrypt directly (no passlib wrapper) with a fixed work factor.
       bcrypt.checkpw compares in constant time.

  API key: the configured key is compared with hmac.compare_digest so the
       comparison time does not leak how many leading characters matched.

The codec is constructed with its secret instead of reading configuration
at import time, so tests and the app can hold codecs with different keys.

Layer rule: no imports from api/, users/, or cache/. Import from core/ is
allowed -- core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from auth.models import DecodedToken, TokenPayload
from core.errors import ApiError

logger = logging.getLogger("sessionauth.auth.tokens")

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("id", "email", "exp")


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 10) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length (Pydantic field), which keeps inputs below that limit.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # malformed hash in the store
        return False


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------


def api_key_matches(expected: str, supplied: str | None) -> bool:
    """Constant-time comparison of the configured API key with a request's key.

    An unconfigured key (empty string) never matches.
    """
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


class TokenCodec:
    """Signs and verifies time-bound session tokens with a shared secret.

    Usage:
        codec = TokenCodec(settings.session_secret)
        token = codec.sign(TokenPayload(id=1, email="a@b.com", device="web"), 3600)
        decoded = codec.verify(token)   # DecodedToken, or raises ApiError
    """

    def __init__(self, secret: str, algorithm: str = _ALGORITHM) -> None:
        if not secret:
            raise ValueError("TokenCodec requires a non-empty secret")
        self._secret = secret
        self._algorithm = algorithm

    def sign(self, payload: TokenPayload, ttl_seconds: int) -> str:
        """Encode payload with iat = now and exp = now + ttl_seconds."""
        issued = datetime.now(timezone.utc)
        claims = payload.claims()
        claims["iat"] = issued
        claims["exp"] = issued + timedelta(seconds=ttl_seconds)
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> DecodedToken:
        """Decode and verify a token.

        Raises ApiError(BAD_REQUEST, "invalid jwt token") when the signature,
        structure, or expiry check fails, or when identity claims are missing.
        """
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            logger.info("JWT rejected: %s", exc)
            raise ApiError.bad_request("invalid jwt token") from exc
        if any(name not in claims for name in _REQUIRED_CLAIMS):
            raise ApiError.bad_request("invalid jwt token")
        return DecodedToken(
            id=claims["id"],
            email=claims["email"],
            device=claims.get("device", ""),
            session_id=claims.get("session_id"),
            iat=int(claims.get("iat", 0)),
            exp=int(claims["exp"]),
        )
