"""User service layer."""

from __future__ import annotations

from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import func

from habitpulse.core.auth.models import DEFAULT_ROLES, Role
from habitpulse.core.auth.password import hash_password
from habitpulse.core.errors import ValidationError
from habitpulse.core.users.models import Organization, User
from habitpulse.core.users.schemas import UserCreateRequest
from habitpulse.extensions import db


def get_user(user_id: int) -> Optional[User]:
    return db.session.get(User, user_id)


def validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError("invalid_timezone", name) from exc
    return name


def create_user(payload: UserCreateRequest) -> User:
    email = payload.email.strip().lower()
    if User.query.filter(func.lower(User.email) == email).first():
        raise ValidationError("email_already_exists")
    if payload.organization_id is not None and not db.session.get(Organization, payload.organization_id):
        raise ValidationError("not_found", "organization")
    user = User(
        email=email,
        full_name=payload.full_name,
        timezone=validate_timezone(payload.timezone) if payload.timezone else None,
        organization_id=payload.organization_id,
        password_hash=hash_password(payload.password),
    )
    db.session.add(user)
    _ensure_default_roles(user)
    db.session.commit()
    return user


def create_organization(name: str) -> Organization:
    name_norm = (name or "").strip()
    if not name_norm:
        raise ValidationError("validation_error")
    if Organization.query.filter_by(name=name_norm).first():
        raise ValidationError("duplicate")
    org = Organization(name=name_norm)
    db.session.add(org)
    db.session.commit()
    return org


def assign_organization(user_id: int, organization_id: Optional[int]) -> User:
    user = get_user(user_id)
    if not user:
        raise ValidationError("not_found", "user")
    if organization_id is not None and not db.session.get(Organization, organization_id):
        raise ValidationError("not_found", "organization")
    user.organization_id = organization_id
    db.session.commit()
    return user


def organization_of(user_id: int) -> Optional[int]:
    """Organization collaborator: the organization a user belongs to, if any."""
    user = get_user(user_id)
    return user.organization_id if user else None


def grant_role(user: User, code: str) -> None:
    role = Role.query.filter_by(name=code).first()
    if not role:
        role = Role(name=code, description=f"Auto-created role {code}")
        db.session.add(role)
    if role not in user.roles:
        user.roles.append(role)


def _ensure_default_roles(user: User) -> None:
    for code in DEFAULT_ROLES:
        grant_role(user, code)
