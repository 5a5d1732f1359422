"""
Password hashing (Argon2id) and bearer-token verification.

Token issuance lives in the identity service; this module only checks the
signature and extracts the user id from the ``sub`` claim.
"""
import logging

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from devblog.config import settings

logger = logging.getLogger(__name__)

# 64 MiB memory cost, 3 iterations, single lane.
_hasher = PasswordHasher(
    time_cost=3,
    memory_cost=2**16,
    parallelism=1,
    hash_len=32,
    salt_len=16,
)


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Return True when *password* matches *password_hash*; never raises."""
    try:
        return _hasher.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError) as exc:
        logger.warning("Password hash could not be verified: %s", exc)
        return False


def decode_access_token(token: str) -> int | None:
    """
    Return the user id carried by *token*, or None when the token is
    invalid, expired, or lacks a numeric ``sub`` claim.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        logger.debug("Rejected bearer token: %s", exc)
        return None

    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        return None
