"""
Unit tests for the identity gateway.
"""

import time
from datetime import UTC, datetime, timedelta

import pytest

from phototimeline.config import Config
from phototimeline.error_handling import AuthenticationError
from phototimeline.services.auth import IdentityAuthService, UserProfile
from tests.conftest import TestDataFactory


class FakeClock:
    def __init__(self):
        self.now = datetime.now(UTC)

    def __call__(self) -> datetime:
        return self.now


class TestIdentityAuthService:
    """Test cases for IdentityAuthService."""

    def setup_method(self):
        """Set up test fixtures."""
        self.clock = FakeClock()
        self.auth = IdentityAuthService(Config(), clock=self.clock)

    def test_initial_state(self):
        assert self.auth.is_authenticated() is False
        assert self.auth.get_token() is None
        assert self.auth.get_user_profile() is None

    def test_sign_in(self):
        token = TestDataFactory.create_jwt_token(
            TestDataFactory.create_jwt_payload(picture="https://example.com/me.png")
        )

        profile = self.auth.sign_in(token)

        assert profile == UserProfile(
            id="test-user-123", email="test@example.com", name="Test User", picture="https://example.com/me.png"
        )
        assert self.auth.is_authenticated() is True
        assert self.auth.get_token() == token
        assert self.auth.get_user_profile() == profile

    def test_firebase_user_id_claim_preferred(self):
        payload = TestDataFactory.create_jwt_payload()
        payload["user_id"] = "firebase-uid"

        profile = self.auth.sign_in(TestDataFactory.create_jwt_token(payload))

        assert profile.id == "firebase-uid"

    def test_sign_out(self):
        self.auth.sign_in(TestDataFactory.create_jwt_token())

        self.auth.sign_out()

        assert self.auth.is_authenticated() is False
        assert self.auth.get_token() is None

    def test_session_expires(self):
        self.auth.sign_in(TestDataFactory.create_jwt_token())

        self.clock.now += timedelta(hours=2)

        assert self.auth.is_authenticated() is False
        assert self.auth.get_user_profile() is None

    def test_expired_token_rejected(self):
        payload = TestDataFactory.create_jwt_payload(exp=int(time.time()) - 60)

        with pytest.raises(AuthenticationError) as exc_info:
            self.auth.sign_in(TestDataFactory.create_jwt_token(payload))

        assert exc_info.value.code == "token_expired"
        assert self.auth.is_authenticated() is False

    @pytest.mark.parametrize("token", ["not-a-jwt", "a.b", "a.!!!.c"])
    def test_malformed_token_rejected(self, token):
        with pytest.raises(AuthenticationError) as exc_info:
            self.auth.sign_in(token)

        assert exc_info.value.code == "token_malformed"

    def test_missing_email_rejected(self):
        payload = TestDataFactory.create_jwt_payload()
        del payload["email"]

        with pytest.raises(AuthenticationError) as exc_info:
            self.auth.sign_in(TestDataFactory.create_jwt_token(payload))

        assert exc_info.value.code == "token_invalid"

    def test_missing_token_outside_development_auth(self):
        with pytest.raises(AuthenticationError) as exc_info:
            self.auth.sign_in()

        assert exc_info.value.code == "token_missing"

    def test_profile_claims_are_sanitized(self):
        payload = TestDataFactory.create_jwt_payload(name="<script>alert(1)</script>Eve")

        profile = self.auth.sign_in(TestDataFactory.create_jwt_token(payload))

        assert profile.name == "Eve"

    def test_profile_claims_kept_verbatim(self):
        payload = TestDataFactory.create_jwt_payload(
            email="o'brien@example.com",
            name="Jean--Luc O'Brien & Co",
            picture="https://example.com/avatar?size=96&format=png",
        )

        profile = self.auth.sign_in(TestDataFactory.create_jwt_token(payload))

        assert profile.email == "o'brien@example.com"
        assert profile.name == "Jean--Luc O'Brien & Co"
        assert profile.picture == "https://example.com/avatar?size=96&format=png"

    @pytest.mark.parametrize("email", ["<b>x</b>", "not-an-email", "a b@example.com"])
    def test_invalid_email_rejected(self, email):
        payload = TestDataFactory.create_jwt_payload(email=email)

        with pytest.raises(AuthenticationError) as exc_info:
            self.auth.sign_in(TestDataFactory.create_jwt_token(payload))

        assert exc_info.value.code == "token_invalid"

    @pytest.mark.parametrize("picture", ["javascript:alert(1)", "not a url", "ftp://example.com/a.png"])
    def test_non_web_picture_dropped(self, picture):
        payload = TestDataFactory.create_jwt_payload(picture=picture)

        profile = self.auth.sign_in(TestDataFactory.create_jwt_token(payload))

        assert profile.picture is None

    def test_ensure_authenticated(self):
        with pytest.raises(AuthenticationError) as exc_info:
            self.auth.ensure_authenticated()
        assert exc_info.value.code == "user_not_authenticated"

        self.auth.sign_in(TestDataFactory.create_jwt_token())
        assert self.auth.ensure_authenticated().id == "test-user-123"

    @pytest.mark.asyncio
    async def test_token_provider(self):
        token = TestDataFactory.create_jwt_token()
        self.auth.sign_in(token)

        assert await self.auth.token_provider() == token

    def test_profile_to_dict(self):
        profile = UserProfile(id="u1", email="u1@example.com")

        assert profile.to_dict() == {"id": "u1", "name": None, "email": "u1@example.com", "picture": None}


class TestDevelopmentSignIn:
    """Test cases for the development user."""

    def test_development_user(self, monkeypatch):
        monkeypatch.setenv("DEV_AUTH_ENABLED", "true")
        monkeypatch.setenv("DEV_USER_EMAIL", "alice@example.com")
        monkeypatch.setenv("DEV_USER_ID", "alice")

        auth = IdentityAuthService(Config())
        profile = auth.sign_in()

        assert profile.id == "alice"
        assert profile.email == "alice@example.com"
        assert auth.is_authenticated() is True
        assert auth.get_token() is None

    def test_invalid_development_email_falls_back(self, monkeypatch):
        monkeypatch.setenv("DEV_AUTH_ENABLED", "true")
        monkeypatch.setenv("DEV_USER_EMAIL", "not-an-email")

        profile = IdentityAuthService(Config()).sign_in()

        assert profile.email == "dev@example.com"

    def test_development_user_disabled_in_production(self, monkeypatch):
        monkeypatch.setenv("DEV_AUTH_ENABLED", "true")
        monkeypatch.setenv("ENVIRONMENT", "production")

        with pytest.raises(AuthenticationError):
            IdentityAuthService(Config()).sign_in()
