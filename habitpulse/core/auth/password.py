"""Bcrypt helpers for account passwords."""

import logging

from habitpulse.extensions import bcrypt

logger = logging.getLogger(__name__)


def hash_password(plain_password: str) -> str:
    if not plain_password:
        raise ValueError("empty_password")
    return bcrypt.generate_password_hash(plain_password).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """False for blank input or a stored value that is not a bcrypt hash."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.check_password_hash(hashed_password, plain_password)
    except ValueError:
        logger.warning("Stored password hash is not bcrypt; refusing login")
        return False
