"""Credential checks and token issuance."""

from __future__ import annotations

import logging
from typing import Optional

from flask_jwt_extended import create_access_token, create_refresh_token

from habitpulse.core.auth.password import verify_password
from habitpulse.core.users.models import User
from habitpulse.extensions import db

logger = logging.getLogger(__name__)


def authenticate_user(email: str, password: str) -> Optional[User]:
    """Return the active user for these credentials, else None."""
    user = User.query.filter_by(email=(email or "").strip().lower()).first()
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        logger.info("Failed login for user %s", user.id)
        return None
    return user


def _claims(user: User) -> dict:
    # Leaderboard scope and day boundaries are resolved from the database;
    # these claims only let clients render without an extra round trip.
    return {
        "roles": user.role_codes,
        "org": user.organization_id,
        "tz": user.timezone or "UTC",
    }


def issue_tokens(user: User) -> dict[str, str]:
    identity = str(user.id)
    return {
        "access_token": create_access_token(identity=identity, additional_claims=_claims(user)),
        "refresh_token": create_refresh_token(identity=identity),
    }


def refresh_access_token(identity: str) -> Optional[str]:
    """Fresh access token carrying current roles, or None if the account is gone."""
    user = db.session.get(User, int(identity))
    if user is None or not user.is_active:
        return None
    return create_access_token(identity=str(user.id), additional_claims=_claims(user))
