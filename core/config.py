"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for PhotoVault happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Two layers of configuration:

  Settings (pydantic-settings): process-level values read once from the
      environment and an optional .env file. Cached via lru_cache.

  SystemConfig (frozen dataclass): the auth-relevant snapshot a request works
      against. Built by build_system_config() from Settings defaults overlaid
      with admin overrides persisted in the system_config table. A snapshot is
      never mutated -- a config change produces a new snapshot on the next
      request.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and
       the session cookie both rely on key entropy.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

  [O1] The signing algorithm allow-list can never contain "none". An unsigned
       ID token must not be accepted regardless of configuration.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Mapping, Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("photovault.config")

DEFAULT_SIGNING_ALGORITHMS = "RS256,ES256,HS256"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = ""
    # Comma-separated host patterns for TrustedHostMiddleware.
    allowed_hosts: str = "localhost,127.0.0.1,*.localhost"

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    # 7 days, matching the access cookie max_age.
    token_expire_seconds: int = 7 * 24 * 3600

    # ------------------------------------------------------------------
    # Login policy (defaults -- admins may override via system_config)
    # ------------------------------------------------------------------

    password_login_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # OAuth / OIDC (defaults -- admins may override via system_config)
    # ------------------------------------------------------------------

    oauth_enabled: bool = False
    oauth_issuer_url: str = ""
    oauth_client_id: str = ""
    oauth_client_secret: str = ""
    oauth_scope: str = "openid email profile"
    # Comma-separated allow-list of ID token signing algorithms.
    oauth_signing_algorithms: str = DEFAULT_SIGNING_ALGORITHMS
    oauth_button_text: str = "Login with OAuth"
    oauth_auto_register: bool = True
    oauth_auto_launch: bool = False
    oauth_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode: refuse to start if SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_signing_algorithms(self) -> "Settings":
        """Reject an allow-list that is empty or contains "none" [O1]."""
        parse_algorithms(self.oauth_signing_algorithms)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()


# ---------------------------------------------------------------------------
# System config snapshot
# ---------------------------------------------------------------------------


def parse_algorithms(value: Any) -> tuple[str, ...]:
    """Normalize a CSV string or sequence of algorithm names into a tuple.

    Raises ValueError for an empty list or when "none" is present [O1].
    """
    if isinstance(value, str):
        items = [v.strip() for v in value.split(",")]
    else:
        items = [str(v).strip() for v in value or ()]
    algorithms = tuple(v for v in items if v)
    if not algorithms:
        raise ValueError("At least one OAuth signing algorithm must be allowed.")
    if any(a.lower() == "none" for a in algorithms):
        raise ValueError("The 'none' signing algorithm can never be allowed.")
    return algorithms


@dataclass(frozen=True)
class OAuthConfig:
    enabled: bool = False
    issuer_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    scope: str = "openid email profile"
    signing_algorithms: tuple[str, ...] = ("RS256", "ES256", "HS256")
    button_text: str = "Login with OAuth"
    auto_register: bool = True
    auto_launch: bool = False
    timeout_seconds: float = 10.0


@dataclass(frozen=True)
class SystemConfig:
    """Immutable auth configuration snapshot handed to AuthService per request."""

    password_login_enabled: bool = True
    oauth: OAuthConfig = field(default_factory=OAuthConfig)


# Override keys accepted by the system_config store, mapped onto the snapshot.
# "oauth.*" keys land on OAuthConfig; everything else on SystemConfig.
SYSTEM_CONFIG_KEYS: frozenset[str] = frozenset(
    {
        "password_login_enabled",
        "oauth.enabled",
        "oauth.issuer_url",
        "oauth.client_id",
        "oauth.client_secret",
        "oauth.scope",
        "oauth.signing_algorithms",
        "oauth.button_text",
        "oauth.auto_register",
        "oauth.auto_launch",
    }
)


def build_system_config(
    settings: Optional[Settings] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> SystemConfig:
    """Build a SystemConfig snapshot from Settings defaults plus stored overrides.

    Unknown override keys raise ValueError rather than being silently
    ignored -- a typo in an admin update must not look like it took effect.
    """
    settings = settings or get_settings()
    overrides = dict(overrides or {})
    unknown = set(overrides) - SYSTEM_CONFIG_KEYS
    if unknown:
        raise ValueError(f"Unknown system config keys: {sorted(unknown)!r}")

    def pick(key: str, default: Any) -> Any:
        return overrides[key] if key in overrides else default

    oauth = OAuthConfig(
        enabled=bool(pick("oauth.enabled", settings.oauth_enabled)),
        issuer_url=str(pick("oauth.issuer_url", settings.oauth_issuer_url)),
        client_id=str(pick("oauth.client_id", settings.oauth_client_id)),
        client_secret=str(pick("oauth.client_secret", settings.oauth_client_secret)),
        scope=str(pick("oauth.scope", settings.oauth_scope)),
        signing_algorithms=parse_algorithms(pick("oauth.signing_algorithms", settings.oauth_signing_algorithms)),
        button_text=str(pick("oauth.button_text", settings.oauth_button_text)),
        auto_register=bool(pick("oauth.auto_register", settings.oauth_auto_register)),
        auto_launch=bool(pick("oauth.auto_launch", settings.oauth_auto_launch)),
        timeout_seconds=settings.oauth_timeout_seconds,
    )
    return SystemConfig(
        password_login_enabled=bool(pick("password_login_enabled", settings.password_login_enabled)),
        oauth=oauth,
    )
