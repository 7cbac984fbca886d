"""Password hashing for credentials stored on Dynamics 365 contacts."""

from __future__ import annotations

import hmac
import re

import bcrypt

BCRYPT_ROUNDS = 12
_BCRYPT_PATTERN = re.compile(r"^\$2[aby]\$\d{2}\$.+")


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def is_bcrypt_hash(value: str) -> bool:
    return bool(_BCRYPT_PATTERN.match(value))


def verify_password(plain_password: str, stored: str, allow_plaintext: bool = True) -> bool:
    """Check a submitted password against a stored credential.

    Stored values in bcrypt format are verified with bcrypt. Anything else is a
    legacy plaintext credential migrated from Dynamics 365 and is compared
    directly, unless ``allow_plaintext`` is off.
    """
    if not plain_password or not stored:
        return False
    if is_bcrypt_hash(stored):
        try:
            return bcrypt.checkpw(plain_password.encode("utf-8"), stored.encode("utf-8"))
        except ValueError:
            return False
    if not allow_plaintext:
        return False
    return hmac.compare_digest(stored.encode("utf-8"), plain_password.encode("utf-8"))
