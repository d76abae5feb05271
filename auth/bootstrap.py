"""
auth/bootstrap.py -- First-run admin creation.

The service checks get_admin() before creating, but two concurrent sign-ups
can both pass that check. The store's single-admin unique index decides the
race: the loser's create() raises DuplicateUserError, which surfaces here as
the same BadRequest the check would have produced [M1]. A DuplicateUserError
while no admin exists means the email belongs to an ordinary user.
"""

from __future__ import annotations

import logging

from auth.errors import BadRequest, DuplicateUserError
from auth.models import AdminSignUpResponse, SignUp
from auth.repositories import CryptoRepository, UserRepository

logger = logging.getLogger("photovault.auth.bootstrap")

_ADMIN_EXISTS = "The server already has an admin"
_EMAIL_TAKEN = "A user with that email already exists"


class AdminBootstrap:
    def __init__(self, crypto: CryptoRepository, user_store: UserRepository) -> None:
        self._crypto = crypto
        self._users = user_store

    def admin_sign_up(self, dto: SignUp) -> AdminSignUpResponse:
        if self._users.get_admin() is not None:
            raise BadRequest(_ADMIN_EXISTS)

        try:
            admin = self._users.create(
                {
                    "email": dto.email,
                    "password": self._crypto.hash(dto.password),
                    "first_name": dto.first_name,
                    "last_name": dto.last_name,
                    "is_admin": True,
                }
            )
        except DuplicateUserError as exc:
            if self._users.get_admin() is None:
                logger.warning("Admin sign-up rejected, email already in use: %s", exc)
                raise BadRequest(_EMAIL_TAKEN) from exc
            logger.warning("Admin sign-up lost the race to another admin: %s", exc)
            raise BadRequest(_ADMIN_EXISTS) from exc

        logger.info("Admin account created (id=%s)", admin.id)
        return AdminSignUpResponse(
            id=admin.id or "",
            created_at=admin.created_at,
            email=admin.email,
            first_name=admin.first_name,
            last_name=admin.last_name,
        )
