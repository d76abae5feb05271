"""
API request and response models for PhotoVault REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import AdminSignUpResponse, AuthUser, ChangePassword, LoginCredentials, LoginResponse, PublicUser, SignUp
from core.config import SystemConfig

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class _EmailNormalized(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator("email", mode="before", check_fields=False)
    @classmethod
    def normalize_email(cls, value: Any) -> str:
        """Lowercase emails so lookups match regardless of how users type them."""
        return str(value).strip().lower()


class LoginRequest(_EmailNormalized):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)

    def to_domain(self) -> LoginCredentials:
        return LoginCredentials(email=self.email, password=self.password)


class SignUpRequest(_EmailNormalized):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=8, max_length=255)
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)

    def to_domain(self) -> SignUp:
        return SignUp(
            email=self.email,
            password=self.password,
            first_name=self.first_name,
            last_name=self.last_name,
        )


class ChangePasswordRequest(BaseModel):
    password: str = Field(min_length=1, max_length=255)
    new_password: str = Field(min_length=8, max_length=255)

    def to_domain(self) -> ChangePassword:
        return ChangePassword(password=self.password, new_password=self.new_password)


class OAuthConfigRequest(BaseModel):
    redirect_uri: str = Field(min_length=1, max_length=2048)


class OAuthCallbackRequest(BaseModel):
    url: str = Field(min_length=1, max_length=4096)


class SystemConfigPatch(BaseModel):
    """Partial update for PUT /api/v1/system-config. Unset fields are left alone."""

    password_login_enabled: Optional[bool] = None
    oauth_enabled: Optional[bool] = None
    oauth_issuer_url: Optional[str] = None
    oauth_client_id: Optional[str] = None
    oauth_client_secret: Optional[str] = None
    oauth_scope: Optional[str] = None
    oauth_signing_algorithms: Optional[list[str]] = None
    oauth_button_text: Optional[str] = None
    oauth_auto_register: Optional[bool] = None
    oauth_auto_launch: Optional[bool] = None

    def to_overrides(self) -> dict[str, Any]:
        """Map set fields onto system_config store keys ("oauth_x" -> "oauth.x")."""
        overrides: dict[str, Any] = {}
        for name, value in self.model_dump(exclude_unset=True).items():
            if value is None:
                continue
            key = "oauth." + name[len("oauth_") :] if name.startswith("oauth_") else name
            overrides[key] = value
        return overrides


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx API response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class LoginResponseModel(BaseModel):
    access_token: str
    user_id: str
    user_email: str
    first_name: str
    last_name: str
    is_admin: bool
    should_change_password: bool

    @classmethod
    def from_domain(cls, resp: LoginResponse) -> "LoginResponseModel":
        return cls(
            access_token=resp.access_token,
            user_id=resp.user_id,
            user_email=resp.user_email,
            first_name=resp.first_name,
            last_name=resp.last_name,
            is_admin=resp.is_admin,
            should_change_password=resp.should_change_password,
        )


class AdminSignUpResponseModel(BaseModel):
    id: str
    created_at: Optional[str]
    email: str
    first_name: str
    last_name: str

    @classmethod
    def from_domain(cls, resp: AdminSignUpResponse) -> "AdminSignUpResponseModel":
        return cls(
            id=resp.id,
            created_at=resp.created_at,
            email=resp.email,
            first_name=resp.first_name,
            last_name=resp.last_name,
        )


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    is_admin: bool
    oauth_linked: bool
    should_change_password: bool
    created_at: Optional[str]

    @classmethod
    def from_domain(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_admin=user.is_admin,
            oauth_linked=bool(user.oauth_id),
            should_change_password=user.should_change_password,
            created_at=user.created_at,
        )


class AuthUserResponse(BaseModel):
    id: str
    email: str
    is_admin: bool

    @classmethod
    def from_domain(cls, user: AuthUser) -> "AuthUserResponse":
        return cls(id=user.id, email=user.email, is_admin=user.is_admin)


class ValidateTokenResponse(BaseModel):
    auth_status: bool


class LogoutResponseModel(BaseModel):
    successful: bool
    redirect_uri: str


class OAuthConfigResponse(BaseModel):
    enabled: bool
    password_login_enabled: bool
    button_text: Optional[str] = None
    auto_launch: Optional[bool] = None
    url: Optional[str] = None


class SystemConfigResponse(BaseModel):
    """Admin view of the effective config. The client secret is never echoed."""

    password_login_enabled: bool
    oauth_enabled: bool
    oauth_issuer_url: str
    oauth_client_id: str
    oauth_client_secret_set: bool
    oauth_scope: str
    oauth_signing_algorithms: list[str]
    oauth_button_text: str
    oauth_auto_register: bool
    oauth_auto_launch: bool

    @classmethod
    def from_domain(cls, config: SystemConfig) -> "SystemConfigResponse":
        oauth = config.oauth
        return cls(
            password_login_enabled=config.password_login_enabled,
            oauth_enabled=oauth.enabled,
            oauth_issuer_url=oauth.issuer_url,
            oauth_client_id=oauth.client_id,
            oauth_client_secret_set=bool(oauth.client_secret),
            oauth_scope=oauth.scope,
            oauth_signing_algorithms=list(oauth.signing_algorithms),
            oauth_button_text=oauth.button_text,
            oauth_auto_register=oauth.auto_register,
            oauth_auto_launch=oauth.auto_launch,
        )
