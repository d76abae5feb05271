"""
api/routes/v1/auth.py -- Password login, session, and admin bootstrap endpoints.

Routes:
  POST /api/v1/auth/login             -- password login; sets session cookies
  POST /api/v1/auth/admin-sign-up     -- create the first (and only) admin
  POST /api/v1/auth/change-password   -- requires auth
  POST /api/v1/auth/validate-token    -- requires auth; {"auth_status": true}
  GET  /api/v1/auth/me                -- requires auth; current AuthUser
  POST /api/v1/auth/logout            -- clears cookies; returns redirect target

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [M5] Cache-Control: no-store on login responses.
  Typed auth failures (Unauthorized, BadRequest, ...) are raised by the service
  and mapped to the error envelope by api/main.py -- routes do not catch them.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    AdminSignUpResponseModel,
    AuthUserResponse,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponseModel,
    LogoutResponseModel,
    SignUpRequest,
    UserResponse,
    ValidateTokenResponse,
)
from auth.constants import ACCESS_COOKIE, AUTH_TYPE_COOKIE
from auth.dependencies import get_auth_service, get_current_user
from auth.models import AuthUser, LoginResponse
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /auth/login, /auth/admin-sign-up, /auth/logout: public
# - everything else: requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_secure(request: Request) -> bool:
    """Cookies get the Secure flag behind HTTPS or when SECURE_COOKIES=true."""
    return get_settings().secure_cookies or request.url.scheme == "https"


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def login_json_response(result: LoginResponse) -> JSONResponse:
    """Serialize a login result and apply its cookie directives."""
    resp = JSONResponse(status_code=200, content=LoginResponseModel.from_domain(result).model_dump())
    for cookie in result.cookies:
        resp.set_cookie(**cookie)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponseModel)
def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password; set session cookies."""
    result = service.login(body.to_domain(), client_ip(request), is_secure(request))
    return login_json_response(result)


@router.post("/auth/admin-sign-up", response_model=AdminSignUpResponseModel, status_code=201)
def admin_sign_up(
    body: SignUpRequest,
    service: AuthService = Depends(get_auth_service),
) -> AdminSignUpResponseModel:
    """Create the first admin account. Fails with 400 once an admin exists."""
    return AdminSignUpResponseModel.from_domain(service.admin_sign_up(body.to_domain()))


@router.post("/auth/logout", response_model=LogoutResponseModel)
async def logout(
    request: Request,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Clear the session cookies and tell the client where to go next.

    OAuth sessions are sent to the provider's end-session endpoint so the
    provider session ends too; everything else lands on the login page.
    """
    result = await service.logout(request.cookies.get(AUTH_TYPE_COOKIE))
    resp = JSONResponse(content=LogoutResponseModel(successful=result.successful, redirect_uri=result.redirect_uri).model_dump())
    resp.delete_cookie(ACCESS_COOKIE, path="/")
    resp.delete_cookie(AUTH_TYPE_COOKIE, path="/")
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/change-password", response_model=UserResponse)
def change_password(
    body: ChangePasswordRequest,
    current_user: AuthUser = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    return UserResponse.from_domain(service.change_password(current_user, body.to_domain()))


@router.post("/auth/validate-token", response_model=ValidateTokenResponse)
def validate_token(current_user: AuthUser = Depends(get_current_user)) -> ValidateTokenResponse:
    return ValidateTokenResponse(auth_status=True)


@router.get("/auth/me", response_model=AuthUserResponse)
def me(current_user: AuthUser = Depends(get_current_user)) -> AuthUserResponse:
    """Return identity information for the currently authenticated user."""
    return AuthUserResponse.from_domain(current_user)
