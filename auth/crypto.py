"""
auth/crypto.py -- bcrypt password hashing behind the CryptoRepository contract.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

DUMMY_HASH enables timing equalization in CredentialValidator.login(): when the
email is unknown (or the user has no password) the validator still runs one
bcrypt comparison, so response time does not reveal whether an account exists
[C1].
"""

from __future__ import annotations

import bcrypt

_ROUNDS = 12
# bcrypt only reads the first 72 bytes; bcrypt>=5 raises instead of truncating.
_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Only the first 72 bytes take part, as with every bcrypt implementation.
    The API layer caps password fields at 255 chars (Pydantic max_length).
    """
    return bcrypt.hashpw(_encode(plain), bcrypt.gensalt(rounds=_ROUNDS)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed hash is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones [C1].
DUMMY_HASH: str = hash_password("photovault_timing_dummy")


class BcryptCrypto:
    """CryptoRepository implementation backed by bcrypt."""

    def hash(self, plain: str) -> str:
        return hash_password(plain)

    def compare_sync(self, plain: str, hashed: str) -> bool:
        return verify_password(plain, hashed)
