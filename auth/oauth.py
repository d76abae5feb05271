"""
auth/oauth.py -- Federated (OIDC) login flow.

One FederatedLoginFlow instance serves one request against one SystemConfig
snapshot. The provider is discovered at most once per instance (and the
adapter caches discovery per process), then bound to a client with the first
provider-advertised signing algorithm that is also in the allow-list.

Security notes:
  [O1] Algorithm allow-list: a provider that only offers algorithms outside the
       allow-list is a configuration error, never a silent downgrade.

  [O2] State: generate_authorization_url() returns a fresh state that the
       caller keeps in its signed session. handle_callback() compares it in
       constant time against the returned state BEFORE any network call. A
       missing or mismatched state is fatal to the flow -- there is no fallback.

  [O3] Email linking: an existing local account is only linked to a provider
       identity when the provider asserts email_verified is True. Otherwise
       anyone able to register the address at the provider could take over
       the local account (including the admin) on their first login.

Account resolution on callback:
  1. Linked user (oauth_id == sub) -- returning users.
  2. User with the same email and no link yet -- link it now, if the email
     is verified [O3].
  3. Otherwise create a non-admin user linked to sub, unless auto_register is
     off, in which case the login is rejected.

The store is synchronous, so account resolution runs in the thread pool.

Layer rule: no imports from api/. The concrete provider library lives behind
IdentityProviderRepository (auth/oidc.py).
"""

from __future__ import annotations

import hmac
import logging
from typing import Any

from authlib.common.security import generate_token
from starlette.concurrency import run_in_threadpool

from auth.constants import AuthType
from auth.credentials import build_login_response
from auth.errors import BadRequest, OAuthConfigError, OAuthStateMismatch
from auth.models import LoginResponse, OAuthAuthorization, ProviderMetadata, User
from auth.repositories import IdentityProviderRepository, OIDCClient, UserRepository
from auth.tokens import SessionTokenManager
from core.config import SystemConfig

logger = logging.getLogger("photovault.auth.oauth")

# Per OIDC Discovery 1.0, RS256 is implied when the provider omits the list.
_DEFAULT_PROVIDER_ALGORITHMS = ("RS256",)


def select_signing_algorithm(metadata: ProviderMetadata, allowed: tuple[str, ...]) -> str:
    """Return the first provider algorithm present in the allow-list [O1]."""
    supported = metadata.id_token_signing_alg_values_supported or _DEFAULT_PROVIDER_ALGORITHMS
    for algorithm in supported:
        if algorithm in allowed:
            return algorithm
    raise OAuthConfigError(
        f"Identity provider signs ID tokens with {list(supported)!r}; " f"none are in the allow-list {list(allowed)!r}"
    )


class FederatedLoginFlow:
    def __init__(
        self,
        config: SystemConfig,
        identity_provider: IdentityProviderRepository,
        user_store: UserRepository,
        tokens: SessionTokenManager,
    ) -> None:
        self._config = config
        self._oauth = config.oauth
        self._provider = identity_provider
        self._users = user_store
        self._tokens = tokens
        self._client: OIDCClient | None = None

    @property
    def enabled(self) -> bool:
        return self._oauth.enabled

    async def _get_client(self) -> OIDCClient:
        if not self._oauth.enabled:
            raise BadRequest("OAuth is not enabled")
        if self._client is None:
            metadata = await self._provider.discover(self._oauth.issuer_url)
            algorithm = select_signing_algorithm(metadata, self._oauth.signing_algorithms)
            self._client = self._provider.build_client(metadata, self._oauth, algorithm)
        return self._client

    # -- Authorization ------------------------------------------------------

    async def generate_authorization_url(self, redirect_uri: str) -> OAuthAuthorization:
        """Start a round-trip: fresh state plus the provider URL embedding it [O2]."""
        client = await self._get_client()
        state = generate_token(30)
        url = client.authorization_url(
            {
                "redirect_uri": redirect_uri,
                "scope": self._oauth.scope,
                "state": state,
            }
        )
        return OAuthAuthorization(url=url, state=state)

    async def generate_config(self, redirect_uri: str) -> dict[str, Any]:
        """Describe the login options; include an authorization URL when OAuth is on."""
        response: dict[str, Any] = {
            "enabled": self._oauth.enabled,
            "password_login_enabled": self._config.password_login_enabled,
        }
        if not self._oauth.enabled:
            return response
        authorization = await self.generate_authorization_url(redirect_uri)
        response.update(
            button_text=self._oauth.button_text,
            auto_launch=self._oauth.auto_launch,
            url=authorization.url,
            state=authorization.state,
        )
        return response

    # -- Callback -----------------------------------------------------------

    async def handle_callback(
        self,
        url: str,
        expected_state: str | None,
        redirect_uri: str,
        secure_cookie: bool,
    ) -> LoginResponse:
        client = await self._get_client()
        params = client.callback_params(url)

        returned_state = params.get("state")
        if not expected_state or not returned_state or not hmac.compare_digest(returned_state, expected_state):
            logger.warning("OAuth callback rejected: state mismatch")
            raise OAuthStateMismatch()

        token_set = await client.callback(redirect_uri, params, {"state": expected_state})
        profile = await client.userinfo(token_set)

        subject = str(profile.get("sub") or "")
        email = str(profile.get("email") or "").strip().lower()
        if not subject or not email:
            raise BadRequest("Identity provider did not return a subject and email")

        user = await run_in_threadpool(self._resolve_user, subject, email, profile)
        token = self._tokens.issue(user, AuthType.OAUTH)
        cookies = self._tokens.cookie_directives(token, AuthType.OAUTH, secure_cookie)
        logger.info("OAuth login for user id=%s", user.id)
        return build_login_response(user, token, cookies)

    def _resolve_user(self, subject: str, email: str, profile: dict[str, Any]) -> User:
        user = self._users.get_by_oauth_id(subject)
        if user is not None:
            return user

        user = self._users.get_by_email(email)
        if user is not None:
            if user.oauth_id:
                # Email is already bound to a different provider identity.
                raise BadRequest("This account is linked to a different OAuth identity")
            if profile.get("email_verified") is not True:
                logger.warning("OAuth login rejected: unverified email %r matches user id=%s", email, user.id)
                raise BadRequest("Identity provider has not verified this email address")
            logger.info("Linking user id=%s to OAuth subject", user.id)
            return self._users.update(user.id or "", {"oauth_id": subject})

        if not self._oauth.auto_register:
            logger.warning("OAuth login rejected: no account for %r and auto-register is off", email)
            raise BadRequest("User does not exist and auto registering is disabled.")

        logger.info("Auto-registering OAuth user %r", email)
        return self._users.create(
            {
                "email": email,
                "first_name": str(profile.get("given_name") or ""),
                "last_name": str(profile.get("family_name") or ""),
                "oauth_id": subject,
                "is_admin": False,
            }
        )

    # -- Logout -------------------------------------------------------------

    async def get_logout_endpoint(self) -> str | None:
        if not self._oauth.enabled:
            return None
        client = await self._get_client()
        return client.metadata.end_session_endpoint
