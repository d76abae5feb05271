"""
auth/constants.py -- Cookie names, auth types, and fixed redirect targets.

Cookie names are part of the client contract: the web and mobile clients read
them by name, so changing a value here logs every browser session out.
"""

from __future__ import annotations

from enum import Enum

ACCESS_COOKIE = "photovault_access_token"
AUTH_TYPE_COOKIE = "photovault_auth_type"

BEARER_PREFIX = "Bearer "

# Where the client lands after logout when there is no provider end-session
# endpoint. autoLaunch=0 stops the login page from bouncing straight back into
# an auto-launched OAuth flow.
DEFAULT_LOGOUT_REDIRECT = "/auth/login?autoLaunch=0"

SESSION_ALGORITHM = "HS256"


class AuthType(str, Enum):
    PASSWORD = "password"
    OAUTH = "oauth"
