"""
Tests for Authentication Service

Unit tests for JWT verification and handshake credential extraction.
"""

from datetime import timedelta

import pytest
from jose import jwt

from tests.conftest import make_token
from tripchat.services.auth_service import AuthFailure, AuthService


class TestAuthService:
    """Tests for AuthService."""

    @pytest.fixture
    def service(self):
        return AuthService()

    # =========================================================================
    # verify_token
    # =========================================================================

    def test_valid_token(self, service):
        """Valid token should yield its user id."""
        assert service.verify_token(make_token("u1")) == ("u1", None)

    def test_sub_claim_fallback(self, service):
        """The sub claim should be used when id is absent."""
        assert service.verify_token(make_token("u1", claim="sub")) == ("u1", None)

    def test_expired_token(self, service):
        """Expired token should be reported as expired."""
        token = make_token("u1", expires_in=timedelta(seconds=-30))
        assert service.verify_token(token) == (None, AuthFailure.EXPIRED)

    def test_wrong_signature(self, service):
        """Token signed with another secret should be invalid."""
        token = jwt.encode({"id": "u1"}, "another-secret", algorithm="HS256")
        assert service.verify_token(token) == (None, AuthFailure.INVALID)

    def test_garbage_token(self, service):
        """Malformed token should be invalid."""
        assert service.verify_token("not.a.jwt") == (None, AuthFailure.INVALID)

    def test_empty_token(self, service):
        """Empty token should be reported as missing."""
        assert service.verify_token("") == (None, AuthFailure.MISSING)

    # =========================================================================
    # Handshake credential extraction
    # =========================================================================

    def test_auth_payload_wins(self, service):
        """Auth payload token should take priority."""
        environ = {"QUERY_STRING": "token=from-query", "HTTP_COOKIE": "token=from-cookie"}
        assert service.extract_socket_token({"token": "from-auth"}, environ) == "from-auth"

    def test_query_before_cookie(self, service):
        """Query string token should beat the cookie."""
        environ = {"QUERY_STRING": "EIO=4&token=from-query", "HTTP_COOKIE": "token=from-cookie"}
        assert service.extract_socket_token(None, environ) == "from-query"

    def test_cookie_fallback(self, service):
        """Cookie token should be used last."""
        environ = {"HTTP_COOKIE": "theme=dark; token=from-cookie"}
        assert service.extract_socket_token({}, environ) == "from-cookie"

    def test_nothing_presented(self, service):
        """No credentials should be reported as missing."""
        assert service.extract_socket_token(None, {}) is None
        assert service.authenticate_socket(None, {}) == (None, AuthFailure.MISSING)

    def test_authenticate_socket(self, service):
        """Handshake with a valid token should authenticate."""
        token = make_token("u7")
        assert service.authenticate_socket({"token": token}, {}) == ("u7", None)
