"""Roles granted to accounts. Admin unlocks the ops endpoints."""

from __future__ import annotations

from sqlalchemy.orm import Mapped, mapped_column

from habitpulse.core.users.models import TimestampMixin
from habitpulse.extensions import db

ROLE_MEMBER = "user"
ROLE_ADMIN = "admin"
ROLE_HABITS_WRITE = "habits:write"

# Granted at registration.
DEFAULT_ROLES = (ROLE_MEMBER, ROLE_HABITS_WRITE)


class Role(db.Model, TimestampMixin):
    __tablename__ = "role"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(64), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(db.String(255), default="")

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class UserRole(db.Model):
    __tablename__ = "user_role"

    user_id: Mapped[int] = mapped_column(
        db.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True
    )
    role_id: Mapped[int] = mapped_column(
        db.ForeignKey("role.id", ondelete="CASCADE"), primary_key=True
    )
