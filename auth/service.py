"""
auth/service.py -- AuthService facade and logout resolution.

AuthService wires the auth components together from explicit constructor
dependencies. The transport builds one per request from the current
SystemConfig snapshot:

    service = AuthService(crypto, user_store, config_store.get(), identity_provider)
    service.login(LoginCredentials(email, password), client_ip, secure_cookie=True)

Each public method delegates to exactly one component:
  CredentialValidator  -- login, change_password
  AdminBootstrap       -- admin_sign_up
  SessionTokenManager  -- validate*, extract_jwt_*
  FederatedLoginFlow   -- generate_*, oauth_login
  LogoutResolver       -- logout
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from auth.bootstrap import AdminBootstrap
from auth.constants import DEFAULT_LOGOUT_REDIRECT, AuthType
from auth.credentials import CredentialValidator
from auth.errors import IdentityProviderError, OAuthConfigError
from auth.models import (
    AdminSignUpResponse,
    AuthUser,
    ChangePassword,
    LoginCredentials,
    LoginResponse,
    LogoutResponse,
    OAuthAuthorization,
    PublicUser,
    SignUp,
)
from auth.oauth import FederatedLoginFlow
from auth.repositories import CryptoRepository, IdentityProviderRepository, UserRepository
from auth.tokens import SessionTokenManager, extract_from_cookie, extract_from_header
from core.config import SystemConfig

logger = logging.getLogger("photovault.auth.service")


class LogoutResolver:
    """Pick the post-logout redirect. Always succeeds."""

    def __init__(self, flow: FederatedLoginFlow) -> None:
        self._flow = flow

    async def logout(self, auth_type: AuthType | str | None) -> LogoutResponse:
        if auth_type == AuthType.OAUTH:
            try:
                endpoint = await self._flow.get_logout_endpoint()
            except (IdentityProviderError, OAuthConfigError) as exc:
                logger.warning("Could not resolve OAuth end-session endpoint, using default: %s", exc)
                endpoint = None
            if endpoint:
                return LogoutResponse(successful=True, redirect_uri=endpoint)
        return LogoutResponse(successful=True, redirect_uri=DEFAULT_LOGOUT_REDIRECT)


class AuthService:
    def __init__(
        self,
        crypto: CryptoRepository,
        user_store: UserRepository,
        config: SystemConfig,
        identity_provider: IdentityProviderRepository,
        tokens: SessionTokenManager | None = None,
    ) -> None:
        self.config = config
        self.tokens = tokens or SessionTokenManager(user_store)
        self.credentials = CredentialValidator(crypto, user_store, config, self.tokens)
        self.bootstrap = AdminBootstrap(crypto, user_store)
        self.oauth = FederatedLoginFlow(config, identity_provider, user_store, self.tokens)
        self.logout_resolver = LogoutResolver(self.oauth)

    # -- Password -----------------------------------------------------------

    def login(self, credentials: LoginCredentials, client_ip: str, secure_cookie: bool) -> LoginResponse:
        return self.credentials.login(credentials, client_ip, secure_cookie)

    def change_password(self, auth_user: AuthUser, dto: ChangePassword) -> PublicUser:
        return self.credentials.change_password(auth_user, dto)

    def admin_sign_up(self, dto: SignUp) -> AdminSignUpResponse:
        return self.bootstrap.admin_sign_up(dto)

    async def logout(self, auth_type: AuthType | str | None) -> LogoutResponse:
        return await self.logout_resolver.logout(auth_type)

    # -- Sessions -----------------------------------------------------------

    def validate(self, headers: Mapping[str, str] | None, cookies: Mapping[str, str] | None = None) -> AuthUser:
        return self.tokens.validate(headers, cookies)

    def validate_payload(self, payload: Mapping[str, Any]) -> AuthUser:
        return self.tokens.validate_payload(payload)

    def validate_token(self, token: str) -> AuthUser:
        return self.tokens.validate_token(token)

    def validate_socket(self, connection: Any) -> AuthUser:
        return self.tokens.validate_socket(connection)

    def extract_jwt_from_cookie(self, cookies: Mapping[str, str] | None) -> str | None:
        return extract_from_cookie(cookies)

    def extract_jwt_from_header(self, headers: Mapping[str, str] | None) -> str | None:
        return extract_from_header(headers)

    # -- OAuth --------------------------------------------------------------

    async def generate_oauth_config(self, redirect_uri: str) -> dict[str, Any]:
        return await self.oauth.generate_config(redirect_uri)

    async def generate_authorization_url(self, redirect_uri: str) -> OAuthAuthorization:
        return await self.oauth.generate_authorization_url(redirect_uri)

    async def oauth_login(
        self,
        url: str,
        expected_state: str | None,
        redirect_uri: str,
        secure_cookie: bool,
    ) -> LoginResponse:
        return await self.oauth.handle_callback(url, expected_state, redirect_uri, secure_cookie)
