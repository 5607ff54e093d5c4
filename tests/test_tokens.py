"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - TokenCodec sign/verify round trip, iat/exp placement
  - Rejections: tampered signature, wrong secret, expired, missing claims
  - session_id claim only present when set
  - bcrypt hash_password / verify_password, including a malformed hash
  - api_key_matches constant-time comparison edge cases
"""

from __future__ import annotations

import pytest
from jose import jwt

from auth.models import TokenPayload
from auth.tokens import TokenCodec, api_key_matches, hash_password, verify_password
from core.errors import ApiError, ErrorKind

SECRET = "s" * 40


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(SECRET)


@pytest.fixture
def payload() -> TokenPayload:
    return TokenPayload(id=7, email="ada@example.com", device="Mozilla/5.0")


# ---------------------------------------------------------------------------
# TokenCodec
# ---------------------------------------------------------------------------


class TestTokenCodec:
    def test_round_trip_preserves_identity_claims(self, codec, payload):
        decoded = codec.verify(codec.sign(payload, 3600))
        assert decoded.id == 7
        assert decoded.email == "ada@example.com"
        assert decoded.device == "Mozilla/5.0"
        assert decoded.session_id is None

    def test_exp_is_iat_plus_ttl(self, codec, payload):
        decoded = codec.verify(codec.sign(payload, 900))
        assert decoded.exp - decoded.iat == 900

    def test_session_id_claim_round_trips(self, codec):
        p = TokenPayload(id=1, email="a@b.co", device="web", session_id="abc")
        assert codec.verify(codec.sign(p, 60)).session_id == "abc"

    def test_session_id_absent_from_claims_when_unset(self, payload):
        assert "session_id" not in payload.claims()

    def test_tampered_token_rejected(self, codec, payload):
        token = codec.sign(payload, 3600)
        head, body, sig = token.split(".")
        tampered = ".".join([head, body, sig[:-2] + ("AA" if sig[-2:] != "AA" else "BB")])
        with pytest.raises(ApiError) as exc_info:
            codec.verify(tampered)
        assert exc_info.value.kind is ErrorKind.BAD_REQUEST
        assert exc_info.value.message == "invalid jwt token"

    def test_wrong_secret_rejected(self, codec, payload):
        token = TokenCodec("o" * 40).sign(payload, 3600)
        with pytest.raises(ApiError) as exc_info:
            codec.verify(token)
        assert exc_info.value.kind is ErrorKind.BAD_REQUEST

    def test_expired_token_rejected(self, codec, payload):
        token = codec.sign(payload, -10)
        with pytest.raises(ApiError) as exc_info:
            codec.verify(token)
        assert exc_info.value == ApiError.bad_request("invalid jwt token")

    def test_garbage_rejected(self, codec):
        with pytest.raises(ApiError):
            codec.verify("not-a-jwt")

    def test_missing_identity_claim_rejected(self, codec):
        token = jwt.encode({"email": "a@b.co", "exp": 9999999999}, SECRET, algorithm="HS256")
        with pytest.raises(ApiError) as exc_info:
            codec.verify(token)
        assert exc_info.value.message == "invalid jwt token"

    def test_empty_secret_refused(self):
        with pytest.raises(ValueError):
            TokenCodec("")


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


class TestPasswords:
    def test_hash_is_not_plaintext_and_verifies(self):
        hashed = hash_password("Sup3r$ecret", rounds=4)
        assert hashed != "Sup3r$ecret"
        assert hashed.startswith("$2")
        assert verify_password("Sup3r$ecret", hashed)

    def test_wrong_password_fails(self):
        hashed = hash_password("Sup3r$ecret", rounds=4)
        assert not verify_password("sup3r$ecret", hashed)

    def test_same_password_hashes_differently(self):
        assert hash_password("x", rounds=4) != hash_password("x", rounds=4)

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False


# ---------------------------------------------------------------------------
# API key
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "expected, supplied, result",
    [
        ("k3y-value", "k3y-value", True),
        ("k3y-value", "k3y-valuE", False),
        # a permutation of the right characters is still wrong
        ("k3y-value", "eulav-y3k", False),
        ("k3y-value", None, False),
        ("k3y-value", "", False),
        ("", "", False),
    ],
)
def test_api_key_matches(expected, supplied, result):
    assert api_key_matches(expected, supplied) is result
