"""
Tests for session tokens.
"""

from datetime import timedelta

import jwt

from conftest import SECRET
from leaveguard.access import Role
from leaveguard.auth import JWTHandler


class TestJWTHandler:
    """Test token creation and verification."""

    def test_round_trip_claims(self, tokens):
        token = tokens.create_session_token("user-1", Role.MANAGER)
        payload = tokens.verify_token(token)

        assert payload is not None
        assert payload.actor_id == "user-1"
        assert payload.role == Role.MANAGER
        assert payload.exp - payload.iat == timedelta(hours=1)

    def test_expired_token_rejected(self, tokens, clock):
        token = tokens.create_session_token("user-1", Role.EMPLOYEE)
        clock.advance(minutes=59)
        assert tokens.verify_token(token) is not None

        clock.advance(minutes=1)
        assert tokens.verify_token(token) is None

    def test_wrong_secret_rejected(self, tokens, clock):
        token = tokens.create_session_token("user-1", Role.EMPLOYEE)
        other = JWTHandler("another-secret-key-with-enough-length-000", clock=clock)
        assert other.verify_token(token) is None

    def test_garbage_rejected(self, tokens):
        assert tokens.verify_token("not-a-jwt") is None

    def test_non_session_token_rejected(self, tokens, clock):
        now = int(clock().timestamp())
        token = jwt.encode(
            {"sub": "user-1", "role": "Admin", "iat": now, "exp": now + 600, "type": "refresh"},
            SECRET,
            algorithm="HS256",
        )
        assert tokens.verify_token(token) is None

    def test_unknown_role_rejected(self, tokens, clock):
        now = int(clock().timestamp())
        token = jwt.encode(
            {"sub": "user-1", "role": "Root", "iat": now, "exp": now + 600, "type": "session"},
            SECRET,
            algorithm="HS256",
        )
        assert tokens.verify_token(token) is None

    def test_ttl_seconds(self, clock):
        handler = JWTHandler(SECRET, ttl=timedelta(minutes=5), clock=clock)
        assert handler.ttl_seconds == 300
