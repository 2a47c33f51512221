"""Tests for signed session tokens."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from delivery_core.auth import SessionTokenError, decode_session_token, issue_session_token
from delivery_core.config import Settings
from delivery_core.permissions import Actor, ActorRole

SECRET = "test-session-secret-0123456789abcdef"


@pytest.fixture
def settings():
    return Settings(session_secret=SECRET, session_ttl_seconds=600)


def sign(payload, secret=SECRET):
    return jwt.encode(payload, secret, algorithm="HS256")


class TestSessionTokens:
    """Test issuing and verifying session tokens."""

    def test_round_trip_keeps_identity(self, settings):
        """Test that a signed token decodes to the same actor."""
        actor = Actor(user_id="u-head", name="Hana Head", role=ActorRole.DEPT_HEAD, department="Engineering")

        decoded = decode_session_token(issue_session_token(actor, settings), settings)

        assert decoded == actor
        assert decoded.heads_department("Engineering")

    def test_expired_token(self, settings):
        """Test that an expired token is rejected."""
        expired = Settings(session_secret=SECRET, session_ttl_seconds=-60)
        token = issue_session_token(Actor(user_id="u-1", name="Ada"), expired)

        with pytest.raises(SessionTokenError, match="expired"):
            decode_session_token(token, settings)

    def test_wrong_signature(self, settings):
        """Test that a token signed with another secret is rejected."""
        token = issue_session_token(Actor(user_id="u-1", name="Ada"), Settings(session_secret="another-secret-" * 3))

        with pytest.raises(SessionTokenError, match="Invalid"):
            decode_session_token(token, settings)

    def test_missing_expiry_is_rejected(self, settings):
        """Test that tokens without exp are rejected."""
        with pytest.raises(SessionTokenError):
            decode_session_token(sign({"sub": "u-1", "name": "Ada"}), settings)

    def test_unknown_role(self, settings):
        """Test that an unknown role claim is rejected."""
        token = sign({
            "sub": "u-1",
            "role": "superuser",
            "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
        })

        with pytest.raises(SessionTokenError, match="superuser"):
            decode_session_token(token, settings)

    def test_defaults_for_optional_claims(self, settings):
        """Test the defaults for name, role and department."""
        token = sign({"sub": "u-1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)})

        actor = decode_session_token(token, settings)

        assert actor.name == "u-1"
        assert actor.role == ActorRole.EMPLOYEE
        assert actor.department is None
