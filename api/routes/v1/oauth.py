"""
api/routes/v1/oauth.py -- OIDC federated login endpoints.

Routes:
  POST /api/v1/oauth/config    -- login options; authorization URL when enabled
  POST /api/v1/oauth/callback  -- complete the round-trip; sets session cookies

State handling [O2]:
  /config stores {state, redirect_uri} in the signed Starlette session
  (SessionMiddleware). /callback pops it before calling the service, so each
  state value can be presented exactly once. A callback with no stored state
  fails the state check in FederatedLoginFlow -- it never falls back.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import LoginResponseModel, OAuthCallbackRequest, OAuthConfigRequest, OAuthConfigResponse
from api.routes.v1.auth import is_secure, login_json_response
from auth.dependencies import get_auth_service
from auth.service import AuthService

router = APIRouter()

OAUTH_SESSION_KEY = "oauth_flow"


@router.post("/oauth/config", response_model=OAuthConfigResponse)
async def generate_config(
    request: Request,
    body: OAuthConfigRequest,
    service: AuthService = Depends(get_auth_service),
) -> OAuthConfigResponse:
    """Return which login methods are on; start an OAuth round-trip if enabled."""
    config = await service.generate_oauth_config(body.redirect_uri)
    state = config.pop("state", None)
    if state:
        request.session[OAUTH_SESSION_KEY] = {"state": state, "redirect_uri": body.redirect_uri}
    return OAuthConfigResponse(**config)


@limiter.limit(login_rate_limit)
@router.post("/oauth/callback", response_model=LoginResponseModel)
async def callback(
    request: Request,
    body: OAuthCallbackRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Exchange the provider callback URL for a PhotoVault session."""
    flow = request.session.pop(OAUTH_SESSION_KEY, None) or {}
    result = await service.oauth_login(
        body.url,
        expected_state=flow.get("state"),
        redirect_uri=flow.get("redirect_uri", ""),
        secure_cookie=is_secure(request),
    )
    return login_json_response(result)
