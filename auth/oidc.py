"""
auth/oidc.py -- authlib/httpx implementation of the identity-provider contract.

The login flow (auth/oauth.py) only sees IdentityProviderRepository and
OIDCClient; this module is the one place that knows about HTTP, authlib and
token-endpoint quirks, so the concrete library stays swappable.

Discovery:
  GET <issuer>/.well-known/openid-configuration, cached process-wide per
  issuer URL. The cache has no TTL -- clear_discovery_cache() is called when
  an admin changes the OAuth config. JWKS documents are cached for an hour,
  and an ID token signed with a kid missing from the cached set forces one
  refetch so provider key rotation does not break logins.

ID token verification:
  python-jose, restricted to the single algorithm the flow selected from the
  allow-list. Asymmetric algorithms verify against the provider JWKS; HS*
  verifies against the client secret. audience, issuer and at_hash are
  checked.

Failure mapping:
  httpx.TimeoutException   -> IdentityProviderTimeout
  other httpx.HTTPError    -> IdentityProviderError
  malformed discovery      -> OAuthConfigError
  provider-side OAuth error, bad ID token -> Unauthorized
"""

from __future__ import annotations

import hmac
import logging
import time
from typing import Any, Mapping
from urllib.parse import parse_qsl, urlsplit

import httpx
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oauth2.rfc6749.parameters import prepare_grant_uri
from jose import JWTError
from jose import jwt as jose_jwt

from auth.errors import (
    IdentityProviderError,
    IdentityProviderTimeout,
    OAuthConfigError,
    OAuthStateMismatch,
    Unauthorized,
)
from auth.models import ProviderMetadata
from core.config import OAuthConfig

logger = logging.getLogger("photovault.auth.oidc")

_WELL_KNOWN = "/.well-known/openid-configuration"

_discovery_cache: dict[str, ProviderMetadata] = {}
# JWKS entries are (fetched_at, document).
_jwks_cache: dict[str, tuple[float, dict[str, Any]]] = {}
_JWKS_TTL_SECONDS = 3600


def clear_discovery_cache() -> None:
    """Drop every cached discovery and JWKS document."""
    _discovery_cache.clear()
    _jwks_cache.clear()
    logger.info("OIDC discovery cache cleared")


def discovery_url(issuer_url: str) -> str:
    url = issuer_url.rstrip("/")
    if url.endswith(_WELL_KNOWN):
        return url
    return url + _WELL_KNOWN


async def _get_json(url: str, timeout: float, transport: httpx.AsyncBaseTransport | None) -> Any:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            return response.json()
    except httpx.TimeoutException as exc:
        raise IdentityProviderTimeout(f"Timed out fetching {url}") from exc
    except httpx.HTTPStatusError as exc:
        raise IdentityProviderError(f"{url} returned status {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise IdentityProviderError(f"Request to {url} failed: {exc}") from exc
    except ValueError as exc:
        raise IdentityProviderError(f"{url} did not return JSON") from exc


class AuthlibIdentityProvider:
    """IdentityProviderRepository backed by httpx + authlib.

    transport is injectable so tests can use httpx.MockTransport.
    """

    def __init__(self, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout
        self._transport = transport

    async def discover(self, issuer_url: str) -> ProviderMetadata:
        if not issuer_url:
            raise OAuthConfigError("OAuth issuer URL is not configured")
        cached = _discovery_cache.get(issuer_url)
        if cached is not None:
            return cached

        doc = await _get_json(discovery_url(issuer_url), self._timeout, self._transport)
        if not isinstance(doc, dict):
            raise OAuthConfigError("Invalid OIDC discovery document")
        try:
            metadata = ProviderMetadata.from_discovery(doc)
        except KeyError as exc:
            raise OAuthConfigError(f"OIDC discovery document missing {exc.args[0]!r}") from exc

        _discovery_cache[issuer_url] = metadata
        logger.info("Discovered OIDC issuer %s", metadata.issuer)
        return metadata

    def build_client(self, metadata: ProviderMetadata, config: OAuthConfig, signing_algorithm: str) -> AuthlibOIDCClient:
        return AuthlibOIDCClient(
            metadata,
            config,
            signing_algorithm,
            timeout=self._timeout,
            transport=self._transport,
        )


class AuthlibOIDCClient:
    """OIDCClient bound to one provider, one client registration and one algorithm."""

    def __init__(
        self,
        metadata: ProviderMetadata,
        config: OAuthConfig,
        signing_algorithm: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.metadata = metadata
        self._config = config
        self._algorithm = signing_algorithm
        self._timeout = timeout
        self._transport = transport

    def _session(self, token: Mapping[str, Any] | None = None) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self._config.client_id,
            client_secret=self._config.client_secret,
            scope=self._config.scope,
            token=dict(token) if token else None,
            timeout=self._timeout,
            transport=self._transport,
        )

    def authorization_url(self, params: Mapping[str, str]) -> str:
        extra = dict(params)
        return prepare_grant_uri(
            self.metadata.authorization_endpoint,
            client_id=self._config.client_id,
            response_type=extra.pop("response_type", "code"),
            redirect_uri=extra.pop("redirect_uri", None),
            scope=extra.pop("scope", self._config.scope),
            state=extra.pop("state", None),
            **extra,
        )

    def callback_params(self, url: str) -> dict[str, str]:
        return dict(parse_qsl(urlsplit(url).query))

    async def callback(
        self,
        redirect_uri: str,
        params: Mapping[str, str],
        checks: Mapping[str, str],
    ) -> dict[str, Any]:
        """Exchange the authorization code and verify the returned ID token."""
        if "error" in params:
            raise Unauthorized(f"Identity provider returned error: {params['error']}")
        expected_state = checks.get("state")
        if expected_state is not None and not hmac.compare_digest(
            str(params.get("state", "")), str(expected_state)
        ):
            raise OAuthStateMismatch()
        code = params.get("code")
        if not code:
            raise Unauthorized("Callback carries no authorization code")

        try:
            async with self._session() as session:
                token = await session.fetch_token(
                    self.metadata.token_endpoint,
                    code=code,
                    redirect_uri=redirect_uri,
                )
        except httpx.TimeoutException as exc:
            raise IdentityProviderTimeout("Timed out exchanging the authorization code") from exc
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Token exchange failed: {exc}") from exc
        except OAuthError as exc:
            raise Unauthorized(f"Token exchange rejected: {exc.error}") from exc

        token_set = dict(token)
        if token_set.get("id_token"):
            token_set["claims"] = await self._verify_id_token(token_set["id_token"], token_set.get("access_token"))
        return token_set

    async def userinfo(self, token_set: Mapping[str, Any]) -> dict[str, Any]:
        if not self.metadata.userinfo_endpoint:
            # Fall back to the verified ID token claims.
            return dict(token_set.get("claims") or {})
        try:
            async with self._session(token=token_set) as session:
                response = await session.get(self.metadata.userinfo_endpoint)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as exc:
            raise IdentityProviderTimeout("Timed out fetching userinfo") from exc
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Userinfo request failed: {exc}") from exc
        if not isinstance(data, dict):
            raise IdentityProviderError("Invalid userinfo response")
        return data

    async def _verify_id_token(self, id_token: str, access_token: str | None) -> dict[str, Any]:
        if self._algorithm.startswith("HS"):
            key: Any = self._config.client_secret
        else:
            key = await self._signing_keys(id_token)
        try:
            return jose_jwt.decode(
                id_token,
                key,
                algorithms=[self._algorithm],
                audience=self._config.client_id,
                issuer=self.metadata.issuer,
                access_token=access_token,
            )
        except JWTError as exc:
            logger.warning("ID token from %s failed verification: %s", self.metadata.issuer, exc)
            raise Unauthorized("Invalid ID token from identity provider") from exc

    async def _get_jwks(self, refresh: bool = False) -> dict[str, Any]:
        jwks_uri = self.metadata.jwks_uri
        if not jwks_uri:
            raise OAuthConfigError("Provider advertises no jwks_uri for asymmetric ID tokens")
        fetched_at, cached = _jwks_cache.get(jwks_uri, (0.0, None))
        now = time.time()
        if cached is not None and not refresh and now - fetched_at < _JWKS_TTL_SECONDS:
            return cached
        data = await _get_json(jwks_uri, self._timeout, self._transport)
        if not isinstance(data, dict) or "keys" not in data:
            raise OAuthConfigError("Invalid JWKS document")
        _jwks_cache[jwks_uri] = (now, data)
        return data

    async def _signing_keys(self, id_token: str) -> dict[str, Any]:
        """JWKS holding the token's kid; refetched once when the kid is unknown."""
        try:
            kid = jose_jwt.get_unverified_header(id_token).get("kid")
        except JWTError as exc:
            raise Unauthorized("Invalid ID token from identity provider") from exc
        jwks = await self._get_jwks()
        if kid and kid not in {key.get("kid") for key in jwks["keys"]}:
            logger.info("Unknown signing key %r from %s, refetching JWKS", kid, self.metadata.issuer)
            jwks = await self._get_jwks(refresh=True)
        return jwks
