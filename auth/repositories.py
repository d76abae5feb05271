"""
auth/repositories.py -- Collaborator contracts consumed by the auth core.

The core depends only on these Protocols. auth/store.py, auth/crypto.py and
auth/oidc.py provide the production implementations; tests pass fakes or
MagicMocks that satisfy the same shape. Everything is injected through
constructors -- there is no container.

Failure contract: implementations raise (UserNotFoundError, DuplicateUserError,
IdentityProviderError, ...) rather than returning silent defaults. Lookups
that legitimately find nothing return None.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from auth.models import ProviderMetadata, User
from core.config import OAuthConfig, SystemConfig


class UserRepository(Protocol):
    def get(self, user_id: str) -> User | None: ...

    def get_by_email(self, email: str, include_password: bool = False) -> User | None: ...

    def get_by_oauth_id(self, oauth_id: str) -> User | None: ...

    def get_admin(self) -> User | None: ...

    def create(self, fields: Mapping[str, Any]) -> User: ...

    def update(self, user_id: str, fields: Mapping[str, Any]) -> User: ...


class SystemConfigRepository(Protocol):
    def get(self) -> SystemConfig: ...

    def update(self, overrides: Mapping[str, Any]) -> SystemConfig: ...


class CryptoRepository(Protocol):
    def hash(self, plain: str) -> str: ...

    def compare_sync(self, plain: str, hashed: str) -> bool: ...


class OIDCClient(Protocol):
    """A client bound to one discovered provider and one signing algorithm."""

    metadata: ProviderMetadata

    def authorization_url(self, params: Mapping[str, str]) -> str: ...

    def callback_params(self, url: str) -> dict[str, str]: ...

    async def callback(
        self,
        redirect_uri: str,
        params: Mapping[str, str],
        checks: Mapping[str, str],
    ) -> dict[str, Any]: ...

    async def userinfo(self, token_set: Mapping[str, Any]) -> dict[str, Any]: ...


class IdentityProviderRepository(Protocol):
    async def discover(self, issuer_url: str) -> ProviderMetadata: ...

    def build_client(
        self,
        metadata: ProviderMetadata,
        config: OAuthConfig,
        signing_algorithm: str,
    ) -> OIDCClient: ...
