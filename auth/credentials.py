"""
auth/credentials.py -- Password login and password change.

Error policy (one rule for both operations):
  Unauthorized -- the caller has no business being here: password login is
                  disabled, or the session user vanished.
  BadRequest   -- the submitted credentials are wrong. Unknown email, no
                  stored hash, and wrong password all return the SAME message
                  so the response cannot be used to probe which emails exist.

Timing [C1]: an unknown email still costs one bcrypt comparison against
DUMMY_HASH, so response time does not leak account existence either.
"""

from __future__ import annotations

import logging

from auth.constants import AuthType
from auth.crypto import DUMMY_HASH
from auth.errors import BadRequest, Unauthorized
from auth.models import AuthUser, ChangePassword, LoginCredentials, LoginResponse, PublicUser, User
from auth.repositories import CryptoRepository, UserRepository
from auth.tokens import SessionTokenManager
from core.config import SystemConfig

logger = logging.getLogger("photovault.auth.credentials")

_BAD_CREDENTIALS = "Incorrect email or password"


def build_login_response(user: User, token: str, cookies: list[dict]) -> LoginResponse:
    return LoginResponse(
        access_token=token,
        user_id=user.id or "",
        user_email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        is_admin=user.is_admin,
        should_change_password=user.should_change_password,
        cookies=cookies,
    )


class CredentialValidator:
    def __init__(
        self,
        crypto: CryptoRepository,
        user_store: UserRepository,
        config: SystemConfig,
        tokens: SessionTokenManager,
    ) -> None:
        self._crypto = crypto
        self._users = user_store
        self._config = config
        self._tokens = tokens

    def login(self, credentials: LoginCredentials, client_ip: str, secure_cookie: bool) -> LoginResponse:
        """Authenticate email/password and issue a password-type session."""
        if not self._config.password_login_enabled:
            raise Unauthorized("Password login has been disabled")

        user = self._users.get_by_email(credentials.email, include_password=True)
        if user is None or not user.password:
            # Equalize timing -- do NOT return before running bcrypt [C1]
            self._crypto.compare_sync(credentials.password, DUMMY_HASH)
            logger.warning("Failed login attempt for %r from %s", credentials.email, client_ip)
            raise BadRequest(_BAD_CREDENTIALS)

        if not self._crypto.compare_sync(credentials.password, user.password):
            logger.warning("Failed login attempt for %r from %s", credentials.email, client_ip)
            raise BadRequest(_BAD_CREDENTIALS)

        token = self._tokens.issue(user, AuthType.PASSWORD)
        cookies = self._tokens.cookie_directives(token, AuthType.PASSWORD, secure_cookie)
        logger.info("Password login for user id=%s from %s", user.id, client_ip)
        return build_login_response(user, token, cookies)

    def change_password(self, auth_user: AuthUser, dto: ChangePassword) -> PublicUser:
        """Verify the old password, then rehash and persist the new one.

        Nothing is written unless every check passes.
        """
        user = self._users.get_by_email(auth_user.email, include_password=True)
        if user is None:
            raise Unauthorized()
        if not user.password:
            raise BadRequest("User does not have a password")
        if not self._crypto.compare_sync(dto.password, user.password):
            raise BadRequest("Wrong password")

        updated = self._users.update(
            user.id or "",
            {"password": self._crypto.hash(dto.new_password), "should_change_password": False},
        )
        logger.info("Password changed for user id=%s", user.id)
        return PublicUser.from_user(updated)
