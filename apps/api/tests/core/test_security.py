"""
Tests for password hashing and token signing.
"""

from datetime import timedelta

import jwt
import pytest

from daanbantayan.core.config import ConfigurationError
from daanbantayan.core.exceptions import (
    InvalidSignatureError,
    MalformedTokenError,
    TokenExpiredError,
)
from daanbantayan.core.security import (
    REFRESH_TOKEN_TYPE,
    PasswordHasher,
    SigningKey,
    TokenSigner,
)


class TestPasswordHasher:
    """Tests for PasswordHasher."""

    def test_verify_accepts_original_password(self, hasher):
        hashed = hasher.hash("correct horse battery staple")
        assert hasher.verify("correct horse battery staple", hashed)

    def test_verify_rejects_other_password(self, hasher):
        hashed = hasher.hash("correct horse battery staple")
        assert not hasher.verify("Correct horse battery staple", hashed)

    def test_hash_is_salted(self, hasher):
        assert hasher.hash("secret-password") != hasher.hash("secret-password")

    def test_hash_uses_configured_rounds(self):
        hashed = PasswordHasher(rounds=5).hash("secret-password")
        assert hashed.startswith("$2b$05$")

    @pytest.mark.parametrize("bad_hash", ["", "not-a-bcrypt-hash", "$2b$04$short"])
    def test_malformed_hash_verifies_false(self, hasher, bad_hash):
        assert hasher.verify("anything", bad_hash) is False

    def test_passwords_beyond_72_bytes_are_truncated_consistently(self, hasher):
        long_password = "p" * 100
        hashed = hasher.hash(long_password)
        assert hasher.verify(long_password, hashed)
        assert hasher.verify("p" * 72, hashed)


class TestSigningKey:
    """Tests for SigningKey."""

    def test_short_secret_rejected(self):
        with pytest.raises(ConfigurationError):
            SigningKey(secret=b"too-short")

    def test_secret_not_in_repr(self):
        key = SigningKey(secret=b"s" * 32)
        assert "sss" not in repr(key)


class TestTokenSigner:
    """Tests for TokenSigner."""

    def test_issue_then_verify_round_trips_subject_and_role(self, signer):
        token = signer.issue("user-1", "teacher", timedelta(minutes=5))

        claims = signer.verify(token)

        assert claims.subject == "user-1"
        assert claims.role == "TEACHER"
        assert claims.token_type == "access"
        assert claims.expires_at - claims.issued_at == timedelta(minutes=5)

    def test_extra_claims_cannot_override_reserved(self, signer):
        token = signer.issue(
            "user-1",
            "STUDENT",
            timedelta(minutes=5),
            extra_claims={"role": "ADMIN", "email": "s@daanbantayan.dev"},
        )

        claims = signer.verify(token)

        assert claims.role == "STUDENT"
        assert claims.claims == {"email": "s@daanbantayan.dev"}

    def test_bearer_prefix_tolerated(self, signer):
        token = signer.issue("user-1", "ADMIN", timedelta(minutes=5))
        assert signer.verify(f"Bearer {token}").subject == "user-1"

    def test_expired_token_rejected(self, signer):
        token = signer.issue("user-1", "ADMIN", timedelta(seconds=-1))

        with pytest.raises(TokenExpiredError):
            signer.verify(token)

    def test_signature_from_other_key_rejected(self, signer, other_signer):
        token = other_signer.issue("user-1", "ADMIN", timedelta(minutes=5))

        with pytest.raises(InvalidSignatureError):
            signer.verify(token)

    def test_garbage_is_malformed(self, signer):
        with pytest.raises(MalformedTokenError):
            signer.verify("not.a.token")

    def test_token_without_role_is_malformed(self, signer):
        token = jwt.encode(
            {"sub": "user-1", "iat": 1, "exp": 4_000_000_000},
            b"test-signing-secret-that-is-long-enough-0123456789",
            algorithm="HS256",
        )

        with pytest.raises(MalformedTokenError):
            signer.verify(token)

    def test_refresh_token_rejected_where_access_expected(self, signer):
        token = signer.issue(
            "user-1", "ADMIN", timedelta(minutes=5), token_type=REFRESH_TOKEN_TYPE
        )

        with pytest.raises(MalformedTokenError):
            signer.verify(token, expected_type="access")

    def test_access_token_rejected_where_refresh_expected(self, signer):
        token = signer.issue("user-1", "ADMIN", timedelta(minutes=5))

        with pytest.raises(MalformedTokenError):
            signer.verify(token, expected_type=REFRESH_TOKEN_TYPE)

    def test_distinct_keys_do_not_interfere(self):
        first = TokenSigner(SigningKey(secret=b"1" * 32))
        second = TokenSigner(SigningKey(secret=b"2" * 32))

        assert first.verify(first.issue("a", "ADMIN", timedelta(minutes=1))).subject == "a"
        assert second.verify(second.issue("b", "ADMIN", timedelta(minutes=1))).subject == "b"
