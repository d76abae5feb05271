"""
tests/conftest.py -- Shared test fixtures for PhotoVault auth tests.

This module provides:
  - unit fixtures: in-memory UserStore, MagicMock crypto, a SessionTokenManager
    with a fixed key, SystemConfig snapshots, and a fake identity provider
  - FakeIdentityProvider / FakeOIDCClient: in-process implementations of the
    identity-provider contract so the OAuth flow runs without a network
  - _patch_lifespan(): wires test collaborators into app.state, bypassing the
    real startup
  - api_client: TestClient with a seeded admin and its session token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient fixtures because route handlers run in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures stay on the calling thread and use :memory:.

The environment must be set before any auth/core import:
  DEBUG=true          -- get_settings() auto-generates SECRET_KEY
  ALLOWED_HOSTS       -- TrustedHostMiddleware must accept "testserver"
  LOGIN_RATE_LIMIT    -- high enough that the suite never trips it
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import Any, Mapping
from unittest.mock import MagicMock
from urllib.parse import parse_qsl, urlencode, urlsplit

# CRITICAL: Set env before any auth/core import so the cached Settings pick it up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ALLOWED_HOSTS", "testserver,localhost")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.constants import AuthType
from auth.crypto import BcryptCrypto
from auth.models import ProviderMetadata
from auth.oidc import clear_discovery_cache
from auth.store import SystemConfigStore, UserStore
from auth.tokens import SessionTokenManager
from core.config import OAuthConfig, SystemConfig

TEST_SECRET = "test-secret-key-with-at-least-32-characters"

ADMIN_EMAIL = "admin@photovault.test"
ADMIN_PASSWORD = "testpass123"

IDP_ISSUER = "https://idp.example.com"


# ---------------------------------------------------------------------------
# Fake identity provider
# ---------------------------------------------------------------------------


def make_metadata(**overrides: Any) -> ProviderMetadata:
    values: dict[str, Any] = {
        "issuer": IDP_ISSUER,
        "authorization_endpoint": f"{IDP_ISSUER}/authorize",
        "token_endpoint": f"{IDP_ISSUER}/token",
        "userinfo_endpoint": f"{IDP_ISSUER}/userinfo",
        "jwks_uri": f"{IDP_ISSUER}/jwks",
        "end_session_endpoint": f"{IDP_ISSUER}/logout",
        "id_token_signing_alg_values_supported": ("RS256",),
    }
    values.update(overrides)
    return ProviderMetadata(**values)


class FakeOIDCClient:
    """OIDCClient that echoes a fixed profile for any authorization code."""

    def __init__(self, metadata: ProviderMetadata, profile: dict[str, Any]) -> None:
        self.metadata = metadata
        self.profile = profile
        self.callback_calls: list[tuple[str, dict, dict]] = []

    def authorization_url(self, params: Mapping[str, str]) -> str:
        return f"{self.metadata.authorization_endpoint}?{urlencode(dict(params))}"

    def callback_params(self, url: str) -> dict[str, str]:
        return dict(parse_qsl(urlsplit(url).query))

    async def callback(self, redirect_uri: str, params: Mapping[str, str], checks: Mapping[str, str]) -> dict[str, Any]:
        self.callback_calls.append((redirect_uri, dict(params), dict(checks)))
        return {"access_token": "provider-access-token", "claims": dict(self.profile)}

    async def userinfo(self, token_set: Mapping[str, Any]) -> dict[str, Any]:
        return dict(self.profile)


class FakeIdentityProvider:
    """IdentityProviderRepository that counts discoveries and records algorithms."""

    def __init__(self, metadata: ProviderMetadata | None = None, profile: dict[str, Any] | None = None) -> None:
        self.metadata = metadata or make_metadata()
        self.profile = profile or {
            "sub": "idp-subject-1",
            "email": "Jane.Doe@Example.com",
            "email_verified": True,
            "given_name": "Jane",
            "family_name": "Doe",
        }
        self.discover_calls = 0
        self.built_algorithms: list[str] = []
        self.error: Exception | None = None
        self.client: FakeOIDCClient | None = None

    async def discover(self, issuer_url: str) -> ProviderMetadata:
        self.discover_calls += 1
        if self.error is not None:
            raise self.error
        return self.metadata

    def build_client(self, metadata: ProviderMetadata, config: OAuthConfig, signing_algorithm: str) -> FakeOIDCClient:
        self.built_algorithms.append(signing_algorithm)
        self.client = FakeOIDCClient(metadata, self.profile)
        return self.client


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_oidc_cache() -> Generator[None, None, None]:
    clear_discovery_cache()
    yield
    clear_discovery_cache()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def crypto() -> MagicMock:
    """CryptoRepository mock with a reversible fake hash (no bcrypt cost)."""
    mock = MagicMock()
    mock.hash.side_effect = lambda plain: f"hashed:{plain}"
    mock.compare_sync.side_effect = lambda plain, hashed: hashed == f"hashed:{plain}"
    return mock


@pytest.fixture
def tokens(user_store: UserStore) -> SessionTokenManager:
    return SessionTokenManager(user_store, secret_key=TEST_SECRET, expire_seconds=3600)


@pytest.fixture
def password_config() -> SystemConfig:
    return SystemConfig(password_login_enabled=True, oauth=OAuthConfig(enabled=False))


@pytest.fixture
def oauth_config() -> SystemConfig:
    return SystemConfig(
        password_login_enabled=True,
        oauth=OAuthConfig(
            enabled=True,
            issuer_url=IDP_ISSUER,
            client_id="photovault",
            client_secret="client-secret",
            signing_algorithms=("RS256", "ES256"),
            auto_register=True,
        ),
    )


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


# ---------------------------------------------------------------------------
# TestClient fixtures
# ---------------------------------------------------------------------------


def _make_test_stores() -> tuple[UserStore, SystemConfigStore]:
    """Create one isolated named shared-memory SQLite DB for both stores."""
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=url), SystemConfigStore(db_url=url)


def _patch_lifespan(user_store: UserStore, config_store: SystemConfigStore, identity_provider: FakeIdentityProvider):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.config_store = config_store
        app.state.crypto = BcryptCrypto()
        app.state.identity_provider = identity_provider
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    Each test gets its own database and cookie jar. The admin is created
    before the client starts and the token is issued with the app's own
    SECRET_KEY so it authenticates against real route handlers.
    """
    user_store, config_store = _make_test_stores()
    crypto = BcryptCrypto()
    admin = user_store.create(
        {
            "email": ADMIN_EMAIL,
            "password": crypto.hash(ADMIN_PASSWORD),
            "first_name": "Ada",
            "last_name": "Admin",
            "is_admin": True,
        }
    )
    token = SessionTokenManager(user_store).issue(admin, AuthType.PASSWORD)

    identity_provider = FakeIdentityProvider()
    app.router.lifespan_context = _patch_lifespan(user_store, config_store, identity_provider)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id or ""

    config_store.close()
    user_store.close()


@pytest.fixture
def empty_api_client() -> Generator[TestClient, None, None]:
    """TestClient over a database with no users at all (first-run state)."""
    user_store, config_store = _make_test_stores()
    app.router.lifespan_context = _patch_lifespan(user_store, config_store, FakeIdentityProvider())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    config_store.close()
    user_store.close()
