"""
auth/tokens.py -- JWT session issuance, validation, and credential extraction.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, email, auth_type, and expiry. Decoding failures surface as
       Unauthorized -- the route layer turns that into a 401.

  Auth type: every token carries exactly one auth_type claim ("password" or
       "oauth"). The auth-type cookie mirrors it so logout can pick the right
       redirect without decoding the token.

  Extraction: cookie first (web UI), then "Authorization: Bearer <token>"
       (mobile and API clients). The header name is case-insensitive, the
       scheme is not -- "bearer x" and "Basic x" are both ignored.

  SECRET_KEY: sourced from core.config.get_settings() unless injected. The
       Settings class validates key length at startup [M6].

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from jose import JWTError, jwt

from auth.constants import ACCESS_COOKIE, AUTH_TYPE_COOKIE, BEARER_PREFIX, SESSION_ALGORITHM, AuthType
from auth.errors import Unauthorized
from auth.models import AuthUser, User
from auth.repositories import UserRepository
from core.config import get_settings

logger = logging.getLogger("photovault.auth.tokens")


# ---------------------------------------------------------------------------
# Extraction helpers -- never raise
# ---------------------------------------------------------------------------


def extract_from_cookie(cookies: Mapping[str, str] | None) -> str | None:
    """Return the access-token cookie value, or None if absent."""
    if not cookies:
        return None
    return cookies.get(ACCESS_COOKIE) or None


def extract_from_header(headers: Mapping[str, str] | None) -> str | None:
    """Return the bearer token from an Authorization header, or None.

    Works with plain dicts (any key casing) and Starlette Headers (already
    case-insensitive).
    """
    if not headers:
        return None
    value = headers.get("authorization")
    if value is None:
        value = next((v for k, v in headers.items() if k.lower() == "authorization"), None)
    if not value or not value.startswith(BEARER_PREFIX):
        return None
    return value[len(BEARER_PREFIX) :].strip() or None


# ---------------------------------------------------------------------------
# Session token manager
# ---------------------------------------------------------------------------


class SessionTokenManager:
    """Issue and validate signed session tokens for one user store.

    secret_key and expire_seconds default to the Settings singleton; tests and
    tools may inject their own.
    """

    def __init__(
        self,
        user_store: UserRepository,
        secret_key: str | None = None,
        expire_seconds: int | None = None,
    ) -> None:
        settings = get_settings()
        self._users = user_store
        self._secret_key = secret_key or settings.secret_key
        self._expire_seconds = expire_seconds if expire_seconds is not None else settings.token_expire_seconds

    @property
    def expire_seconds(self) -> int:
        return self._expire_seconds

    # -- JWT encode / decode ------------------------------------------------

    def issue(self, user: User, auth_type: AuthType) -> str:
        """Encode a signed JWT for user, tagged with auth_type."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user.id,
            "user_id": user.id,
            "email": user.email,
            "auth_type": AuthType(auth_type).value,
            "iat": now,
            "exp": now + timedelta(seconds=self._expire_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=SESSION_ALGORITHM)

    def decode(self, token: str) -> dict[str, Any]:
        """Verify signature and expiry; return the claims or raise Unauthorized."""
        try:
            return jwt.decode(token, self._secret_key, algorithms=[SESSION_ALGORITHM])
        except JWTError as exc:
            logger.debug("Rejected session token: %s", exc)
            raise Unauthorized("Invalid or expired session token.") from exc

    # -- Validation ---------------------------------------------------------

    def validate_payload(self, payload: Mapping[str, Any]) -> AuthUser:
        """Resolve a decoded payload to the current AuthUser.

        The user row is re-read on every request so admin changes (and user
        deletion) take effect without waiting for token expiry.
        """
        user_id = payload.get("user_id")
        if not user_id:
            raise Unauthorized("Session token has no user.")
        user = self._users.get(str(user_id))
        if user is None:
            raise Unauthorized("Session user no longer exists.")
        return AuthUser.from_user(user)

    def validate_token(self, token: str) -> AuthUser:
        return self.validate_payload(self.decode(token))

    def validate(
        self,
        headers: Mapping[str, str] | None,
        cookies: Mapping[str, str] | None = None,
    ) -> AuthUser:
        """Authenticate a request from its cookies or Authorization header."""
        token = extract_from_cookie(cookies) or extract_from_header(headers)
        if not token:
            raise Unauthorized()
        return self.validate_token(token)

    def validate_socket(self, connection: Any) -> AuthUser:
        """Authenticate a WebSocket handshake.

        connection is anything exposing .headers (and optionally .cookies),
        e.g. starlette.websockets.WebSocket.
        """
        headers = getattr(connection, "headers", None)
        cookies = getattr(connection, "cookies", None)
        token = extract_from_header(headers) or extract_from_cookie(cookies)
        if not token:
            raise Unauthorized("Socket handshake carries no session token.")
        return self.validate_token(token)

    # -- Cookies ------------------------------------------------------------

    def cookie_directives(self, token: str, auth_type: AuthType, secure: bool) -> list[dict[str, Any]]:
        """Build set_cookie() kwargs for the access and auth-type cookies.

        httponly: JS cannot read either cookie (XSS mitigation).
        samesite="lax": not sent on cross-site POST (CSRF mitigation).
        secure: mirrors the caller's secure flag exactly.
        max_age: matches the JWT expiry so both expire together.
        """
        common = {
            "httponly": True,
            "samesite": "lax",
            "path": "/",
            "max_age": self._expire_seconds,
            "secure": secure,
        }
        return [
            {"key": ACCESS_COOKIE, "value": token, **common},
            {"key": AUTH_TYPE_COOKIE, "value": AuthType(auth_type).value, **common},
        ]
