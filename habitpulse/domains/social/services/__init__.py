"""Social services: friend edges and privacy settings."""

from __future__ import annotations

from typing import Dict, Set

from habitpulse.core.errors import ValidationError
from habitpulse.core.users.services import get_user
from habitpulse.domains.social.models.social_models import Friendship, PrivacySetting
from habitpulse.domains.social.privacy import ScopeClass, Visibility, is_mutual
from habitpulse.extensions import db


def friend_edges(user_id: int) -> Set[int]:
    """Social graph collaborator: users this user has added as friends."""
    rows = db.session.query(Friendship.friend_id).filter(Friendship.user_id == user_id).all()
    return {friend_id for (friend_id,) in rows}


def mutual_friends(user_id: int) -> Set[int]:
    return {other for other in friend_edges(user_id) if is_mutual(user_id, other, friend_edges)}


def add_friend(user_id: int, friend_id: int) -> bool:
    """Add the edge ``user_id -> friend_id``; returns False if it already existed."""
    if user_id == friend_id:
        raise ValidationError("validation_error", "friend_id")
    if not get_user(friend_id):
        raise ValidationError("not_found", "user")
    if Friendship.query.filter_by(user_id=user_id, friend_id=friend_id).first():
        return False
    db.session.add(Friendship(user_id=user_id, friend_id=friend_id))
    db.session.commit()
    return True


def remove_friend(user_id: int, friend_id: int) -> bool:
    edge = Friendship.query.filter_by(user_id=user_id, friend_id=friend_id).first()
    if not edge:
        return False
    db.session.delete(edge)
    db.session.commit()
    return True


def set_privacy(user_id: int, scope_class: str, visibility: str) -> PrivacySetting:
    try:
        scope = ScopeClass(scope_class)
        level = Visibility(visibility)
    except ValueError as exc:
        raise ValidationError("validation_error", str(exc)) from exc
    if not get_user(user_id):
        raise ValidationError("not_found", "user")
    setting = PrivacySetting.query.filter_by(user_id=user_id, scope_class=scope.value).first()
    if setting is None:
        setting = PrivacySetting(user_id=user_id, scope_class=scope.value)
        db.session.add(setting)
    setting.visibility = level.value
    db.session.commit()
    return setting


def get_privacy(user_id: int) -> Dict[str, str]:
    rows = PrivacySetting.query.filter_by(user_id=user_id).all()
    stored = {row.scope_class: row.visibility for row in rows}
    return {scope.value: stored.get(scope.value, Visibility.PUBLIC.value) for scope in ScopeClass}
