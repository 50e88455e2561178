"""
Tests for bearer token extraction and JWT verification.
"""

from datetime import timedelta

import pytest

from flikkt.exceptions import AuthenticationError
from flikkt.models.domain import UserIdentity
from flikkt.services.auth import TokenVerifier, extract_bearer_token

USER_ID = "8b0c3a52-3f6e-4d1e-9a57-2f1d4c6b7e90"


class TestExtractBearerToken:
    """Tests for extract_bearer_token."""

    def test_extracts_token(self):
        assert extract_bearer_token("Bearer abc.def.ghi") == "abc.def.ghi"

    def test_scheme_is_case_insensitive(self):
        assert extract_bearer_token("bearer abc") == "abc"

    @pytest.mark.parametrize("header", [None, ""])
    def test_missing_header(self, header):
        with pytest.raises(AuthenticationError, match="Authorization header required"):
            extract_bearer_token(header)

    @pytest.mark.parametrize("header", ["Basic abc", "Bearer", "Bearer   ", "abc"])
    def test_malformed_header(self, header: str):
        with pytest.raises(AuthenticationError, match="Bearer <token>"):
            extract_bearer_token(header)


class TestTokenVerifier:
    """Tests for TokenVerifier.verify."""

    def test_valid_token(self, token_verifier: TokenVerifier, token_factory):
        identity = token_verifier.verify(token_factory())

        assert identity == UserIdentity(user_id=USER_ID, email="user@example.com")

    def test_token_without_email(self, token_verifier: TokenVerifier, token_factory):
        identity = token_verifier.verify(token_factory(email=None))

        assert identity.email is None

    def test_expired_token(self, token_verifier: TokenVerifier, token_factory):
        token = token_factory(expires_in=timedelta(minutes=-5))

        with pytest.raises(AuthenticationError, match="expired"):
            token_verifier.verify(token)

    def test_wrong_secret(self, token_verifier: TokenVerifier, token_factory):
        token = token_factory(secret="another-secret-that-is-long-enough-too")

        with pytest.raises(AuthenticationError, match="Invalid token"):
            token_verifier.verify(token)

    def test_wrong_audience(self, token_verifier: TokenVerifier, token_factory):
        with pytest.raises(AuthenticationError, match="Invalid token"):
            token_verifier.verify(token_factory(audience="anon"))

    def test_missing_subject(self, token_verifier: TokenVerifier, token_factory):
        with pytest.raises(AuthenticationError, match="missing user ID"):
            token_verifier.verify(token_factory(sub=None))

    def test_garbage_token(self, token_verifier: TokenVerifier):
        with pytest.raises(AuthenticationError):
            token_verifier.verify("not-a-jwt")

    def test_unconfigured_secret(self, token_factory):
        with pytest.raises(AuthenticationError, match="not configured"):
            TokenVerifier("").verify(token_factory())

    def test_verify_header(self, token_verifier: TokenVerifier, auth_header: str):
        assert token_verifier.verify_header(auth_header).user_id == USER_ID
