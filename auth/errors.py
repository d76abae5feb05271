"""
auth/errors.py -- Typed failures raised by the auth core and its collaborators.

Only lightweight, data-carrying exceptions live here so that the API layer can
translate them into HTTP responses without the core knowing about HTTP. Each
class carries the status code and error code the API envelope uses.

Hierarchy:
  AuthError
    Unauthorized             -- no valid session, credential-free rejection
      OAuthStateMismatch     -- callback state missing or not ours
    BadRequest               -- submitted credentials/request are wrong
    OAuthConfigError         -- provider/config combination is unusable
    IdentityProviderError    -- provider unreachable or returned garbage
      IdentityProviderTimeout

Store errors (raised by UserStore implementations, not mapped to AuthError):
  UserNotFoundError, DuplicateUserError
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the auth core surfaces to callers."""

    status_code: int = 500
    code: str = "auth_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    default_message = "Authentication failed."

    @property
    def message(self) -> str:
        return str(self)

    def to_payload(self) -> dict[str, str]:
        """Return a JSON-serialisable error body **without secrets**."""
        return {"code": self.code, "message": self.message}


class Unauthorized(AuthError):
    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."


class OAuthStateMismatch(Unauthorized):
    code = "oauth_state_mismatch"
    default_message = "OAuth state does not match this login attempt."


class BadRequest(AuthError):
    status_code = 400
    code = "bad_request"
    default_message = "Bad request."


class OAuthConfigError(AuthError):
    status_code = 500
    code = "oauth_config_error"
    default_message = "OAuth is misconfigured."


class IdentityProviderError(AuthError):
    status_code = 502
    code = "identity_provider_error"
    default_message = "The identity provider could not be reached."


class IdentityProviderTimeout(IdentityProviderError):
    status_code = 504
    code = "identity_provider_timeout"
    default_message = "The identity provider timed out."


class UserNotFoundError(LookupError):
    """Raised by UserStore.update() when the target id does not exist."""


class DuplicateUserError(Exception):
    """Raised by UserStore.create() on a unique-constraint violation.

    Covers both a taken email and a second admin (the single-admin partial
    unique index).
    """
