"""Friend edges and per-scope privacy settings."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Mapped, mapped_column

from habitpulse.extensions import db


class Friendship(db.Model):
    """Directed edge; two users are friends when both directions exist."""

    __tablename__ = "social_friendship"
    __table_args__ = (
        db.UniqueConstraint("user_id", "friend_id", name="uq_social_friendship_edge"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False, index=True)
    friend_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)


class PrivacySetting(db.Model):
    """Leaderboard visibility of a user for one scope class. No row means public."""

    __tablename__ = "social_privacy_setting"
    __table_args__ = (
        db.UniqueConstraint("user_id", "scope_class", name="uq_social_privacy_scope"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False, index=True)
    scope_class: Mapped[str] = mapped_column(db.String(32), nullable=False)
    visibility: Mapped[str] = mapped_column(db.String(32), nullable=False, default="public")
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )
