"""Tests for bearer token checks."""

import time

from services.data_access.app.auth.tokens import (
    clean_token,
    get_token_claims,
    is_token_expired,
    is_valid_jwt,
    token_expires_at,
)


class TestIsValidJwt:
    """Tests for structural validation."""

    def test_valid_token(self, make_token):
        """Test a signed JWT is structurally valid."""
        assert is_valid_jwt(make_token()) is True

    def test_whitespace_is_cleaned(self, make_token):
        """Test surrounding and embedded whitespace is ignored."""
        token = make_token()
        assert is_valid_jwt(f"  {token[:10]}\n{token[10:]} ") is True

    def test_wrong_segment_count(self):
        """Test tokens without three segments are rejected."""
        assert is_valid_jwt("abc.def") is False
        assert is_valid_jwt("a.b.c.d") is False

    def test_invalid_characters(self, make_token):
        """Test non-base64url characters are rejected."""
        token = make_token()
        assert is_valid_jwt(token.replace(".", ".+", 1)) is False

    def test_undecodable_header(self):
        """Test segments that are not JSON are rejected."""
        assert is_valid_jwt("abc.def.ghi") is False

    def test_non_string(self):
        """Test non-strings are rejected."""
        assert is_valid_jwt(None) is False
        assert is_valid_jwt(12345) is False
        assert clean_token("   ") is None


class TestExpiry:
    """Tests for expiry checks."""

    def test_buffer_applies(self, make_token):
        """Test a token expiring in 3 minutes is expired under a 5 minute buffer."""
        now = time.time()
        token = make_token(expires_in=180, now=now)

        assert is_token_expired(token, buffer_minutes=5, now=now) is True
        assert is_token_expired(token, buffer_minutes=1, now=now) is False

    def test_past_expiry(self, make_token):
        """Test a token past its exp is expired."""
        now = time.time()
        assert is_token_expired(make_token(expires_in=-10, now=now), buffer_minutes=0, now=now) is True

    def test_undecodable_is_expired(self):
        """Test decode failures count as expired."""
        assert is_token_expired("not-a-token") is True

    def test_missing_exp_not_expired(self, make_token):
        """Test tokens without exp never expire client-side."""
        token = make_token(expires_in=None)

        assert is_token_expired(token) is False
        assert token_expires_at(token) is None

    def test_claims(self, make_token):
        """Test unverified claim decoding."""
        now = time.time()
        token = make_token(expires_in=60, now=now, role="admin")

        assert get_token_claims(token)["role"] == "admin"
        assert token_expires_at(token) == float(int(now + 60))
