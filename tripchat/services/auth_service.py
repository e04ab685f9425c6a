"""
Authentication Service

JWT verification and credential extraction for sockets and REST.
"""

import logging
from http.cookies import CookieError, SimpleCookie
from typing import Any, Mapping, Optional, Tuple
from urllib.parse import parse_qs

from jose import ExpiredSignatureError, JWTError, jwt

from tripchat.config import settings

logger = logging.getLogger(__name__)


class AuthFailure:
    """Why a credential was rejected. Logged only, never sent to clients."""
    MISSING = "missing"
    INVALID = "invalid"
    EXPIRED = "expired"


class AuthService:
    """
    Authentication service for token verification.

    SECURITY: Tokens are issued elsewhere; this service only verifies
    the signature and extracts the user id claim. Clients always get a
    generic failure regardless of the reason.
    """

    def verify_token(self, token: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Verify a JWT and return (user_id, failure_reason).

        Exactly one of the two is set. The user id is read from the `id`
        claim, falling back to `sub`.
        """
        if not token:
            return None, AuthFailure.MISSING

        try:
            claims = jwt.decode(
                token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
            )
        except ExpiredSignatureError:
            return None, AuthFailure.EXPIRED
        except JWTError:
            return None, AuthFailure.INVALID

        user_id = claims.get("id") or claims.get("sub")
        if not user_id:
            return None, AuthFailure.INVALID

        return str(user_id), None

    def extract_socket_token(
        self, auth: Optional[Any], environ: Mapping[str, Any]
    ) -> Optional[str]:
        """
        Find the credential presented at Socket.IO handshake time.

        Checked in order: the `auth` payload, the `token` query parameter,
        then the token cookie.
        """
        if isinstance(auth, dict):
            token = auth.get("token")
            if isinstance(token, str) and token:
                return token

        query = parse_qs(environ.get("QUERY_STRING", ""))
        token_values = query.get("token")
        if token_values and token_values[0]:
            return token_values[0]

        return self.token_from_cookie_header(environ.get("HTTP_COOKIE"))

    def token_from_cookie_header(self, cookie_header: Optional[str]) -> Optional[str]:
        """Read the auth cookie out of a raw Cookie header."""
        if not cookie_header:
            return None

        cookie = SimpleCookie()
        try:
            cookie.load(cookie_header)
        except CookieError:
            logger.debug("Unparseable cookie header on handshake")
            return None

        morsel = cookie.get(settings.auth_cookie_name)
        if morsel and morsel.value:
            return morsel.value
        return None

    def authenticate_socket(
        self, auth: Optional[Any], environ: Mapping[str, Any]
    ) -> Tuple[Optional[str], Optional[str]]:
        """Extract and verify a handshake credential."""
        token = self.extract_socket_token(auth, environ)
        if not token:
            return None, AuthFailure.MISSING
        return self.verify_token(token)
