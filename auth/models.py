"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and services
do the work; the HTTP contract lives separately in api/models.py.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class User:
    """A PhotoVault account.

    password is the bcrypt hash, or None when the row was fetched without
    include_password or the user is OAuth-only. oauth_id is the provider's
    stable subject; empty string until the first OAuth login links it.
    """

    email: str
    id: str | None = None
    password: str | None = None
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False
    oauth_id: str = ""
    should_change_password: bool = False
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PublicUser:
    """Public-safe projection of a User. Never carries the password hash."""

    id: str
    email: str
    first_name: str
    last_name: str
    is_admin: bool
    oauth_id: str
    should_change_password: bool
    created_at: str | None

    @classmethod
    def from_user(cls, user: User) -> PublicUser:
        return cls(
            id=user.id or "",
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_admin=user.is_admin,
            oauth_id=user.oauth_id,
            should_change_password=user.should_change_password,
            created_at=user.created_at,
        )


@dataclass(frozen=True)
class AuthUser:
    """Identity derived from a validated session token."""

    id: str
    email: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user: User) -> AuthUser:
        return cls(id=user.id or "", email=user.email, is_admin=user.is_admin)


@dataclass(frozen=True)
class LoginCredentials:
    email: str
    password: str


@dataclass(frozen=True)
class ChangePassword:
    password: str
    new_password: str


@dataclass(frozen=True)
class SignUp:
    email: str
    password: str
    first_name: str
    last_name: str


@dataclass
class LoginResponse:
    """Result of a successful password or OAuth login.

    cookies holds set_cookie() keyword dicts; the transport applies them to
    its response object unchanged.
    """

    access_token: str
    user_id: str
    user_email: str
    first_name: str
    last_name: str
    is_admin: bool
    should_change_password: bool
    cookies: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class AdminSignUpResponse:
    id: str
    created_at: str | None
    email: str
    first_name: str
    last_name: str


@dataclass(frozen=True)
class LogoutResponse:
    successful: bool
    redirect_uri: str


@dataclass(frozen=True)
class OAuthAuthorization:
    """Start of a federated login round-trip.

    state must be kept by the caller (signed session) and handed back to the
    callback; it is valid for exactly one round-trip.
    """

    url: str
    state: str


@dataclass(frozen=True)
class ProviderMetadata:
    """The subset of an OIDC discovery document the login flow relies on."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str | None = None
    jwks_uri: str | None = None
    end_session_endpoint: str | None = None
    id_token_signing_alg_values_supported: tuple[str, ...] = ()

    @classmethod
    def from_discovery(cls, doc: dict[str, Any]) -> ProviderMetadata:
        """Map a raw discovery document. Raises KeyError on missing required endpoints."""
        return cls(
            issuer=str(doc["issuer"]),
            authorization_endpoint=str(doc["authorization_endpoint"]),
            token_endpoint=str(doc["token_endpoint"]),
            userinfo_endpoint=doc.get("userinfo_endpoint"),
            jwks_uri=doc.get("jwks_uri"),
            end_session_endpoint=doc.get("end_session_endpoint"),
            id_token_signing_alg_values_supported=tuple(doc.get("id_token_signing_alg_values_supported") or ()),
        )
