"""Challenges, their tagged habits and membership intervals."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import and_, or_
from sqlalchemy.orm import Mapped, mapped_column, relationship

from habitpulse.extensions import db


class Challenge(db.Model):
    __tablename__ = "challenges_challenge"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text)
    creator_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False, index=True)
    organization_id: Mapped[int | None] = mapped_column(db.ForeignKey("organization.id"), index=True)
    start_day: Mapped[date] = mapped_column(nullable=False)
    end_day: Mapped[date | None] = mapped_column(nullable=True)
    partial_credit: Mapped[bool] = mapped_column(default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    habit_links: Mapped[list["ChallengeHabit"]] = relationship(
        "ChallengeHabit", back_populates="challenge", cascade="all, delete-orphan"
    )
    memberships: Mapped[list["ChallengeMembership"]] = relationship(
        "ChallengeMembership",
        back_populates="challenge",
        order_by="ChallengeMembership.id",
        lazy="dynamic",
    )

    def window_end(self, as_of: date) -> date:
        return min(as_of, self.end_day) if self.end_day else as_of

    @classmethod
    def running_on(cls, day: date):
        """SQL filter: the challenge window contains ``day`` (end day inclusive)."""
        return and_(cls.start_day <= day, or_(cls.end_day.is_(None), cls.end_day >= day))


class ChallengeHabit(db.Model):
    """Tags one member's habit as counting toward a challenge."""

    __tablename__ = "challenges_challenge_habit"
    __table_args__ = (
        db.UniqueConstraint("challenge_id", "habit_id", name="uq_challenge_habit"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    challenge_id: Mapped[int] = mapped_column(db.ForeignKey("challenges_challenge.id"), nullable=False, index=True)
    habit_id: Mapped[int] = mapped_column(db.ForeignKey("habits_habit.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False)
    weight: Mapped[float] = mapped_column(db.Float, nullable=False, default=1.0)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    challenge: Mapped[Challenge] = relationship("Challenge", back_populates="habit_links")


class ChallengeMembership(db.Model):
    """One membership interval; a leave closes it and a rejoin opens a new row."""

    __tablename__ = "challenges_membership"
    __table_args__ = (
        db.Index("ix_challenges_membership_open", "challenge_id", "user_id", "left_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    challenge_id: Mapped[int] = mapped_column(db.ForeignKey("challenges_challenge.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False, index=True)
    joined_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    joined_day: Mapped[date] = mapped_column(nullable=False)
    left_at: Mapped[datetime | None] = mapped_column(nullable=True)
    left_day: Mapped[date | None] = mapped_column(nullable=True)
    opt_out_of_leaderboard: Mapped[bool] = mapped_column(default=False, nullable=False)

    challenge: Mapped[Challenge] = relationship("Challenge", back_populates="memberships")
