"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

get_auth_service() builds a request-scoped AuthService from the long-lived
collaborators on app.state and a fresh SystemConfig snapshot, so an admin
config change applies from the very next request.

Credential extraction order (SessionTokenManager.validate):
  1. Access-token cookie -- set by the web UI login flow.
  2. Authorization: Bearer <token> header -- mobile and API clients.

get_current_user() raises Unauthorized (mapped to 401 by api/main.py).
require_admin() additionally raises HTTP 403 for non-admins.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from starlette.requests import HTTPConnection

from auth.models import AuthUser
from auth.repositories import SystemConfigRepository
from auth.service import AuthService


def get_config_store(connection: HTTPConnection) -> SystemConfigRepository:
    return connection.app.state.config_store


def get_auth_service(connection: HTTPConnection) -> AuthService:
    """Build an AuthService for one HTTP request or WebSocket handshake."""
    state = connection.app.state
    return AuthService(
        crypto=state.crypto,
        user_store=state.user_store,
        config=get_config_store(connection).get(),
        identity_provider=state.identity_provider,
    )


def get_current_user(request: Request, service: AuthService = Depends(get_auth_service)) -> AuthUser:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: AuthUser = Depends(get_current_user)): ...
    """
    return service.validate(request.headers, request.cookies)


def require_admin(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    """Require the admin flag. Raises HTTP 403 if the user is not an admin."""
    if not user.is_admin:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return user
