"""Habit definitions and the append-only completion ledger table."""

from __future__ import annotations

from datetime import date, datetime
from typing import FrozenSet

from sqlalchemy.orm import Mapped, mapped_column, relationship

from habitpulse.core.utils.dates import local_day
from habitpulse.extensions import db

HABIT_KIND_SIMPLE = "simple"
HABIT_KIND_COUNTER = "counter"
HABIT_KINDS = (HABIT_KIND_SIMPLE, HABIT_KIND_COUNTER)

EVENT_KIND_INCREMENT = "increment"
EVENT_KIND_DECREMENT = "decrement"
EVENT_KIND_RESET = "reset"

ALL_WEEKDAYS = [0, 1, 2, 3, 4, 5, 6]


class Habit(db.Model):
    __tablename__ = "habits_habit"
    __table_args__ = (
        db.Index("ix_habits_habit_user_deleted", "user_id", "deleted_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), index=True, nullable=False)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(db.Text)
    kind: Mapped[str] = mapped_column(db.String(16), nullable=False, default=HABIT_KIND_SIMPLE)
    target_count: Mapped[int] = mapped_column(nullable=False, default=1)
    schedule_days: Mapped[list] = mapped_column(db.JSON, nullable=False, default=lambda: list(ALL_WEEKDAYS))
    timezone: Mapped[str] = mapped_column(db.String(64), nullable=False, default="UTC")
    overflow_policy: Mapped[str | None] = mapped_column(db.String(16))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    events: Mapped[list["CompletionEvent"]] = relationship(
        "CompletionEvent",
        back_populates="habit",
        order_by="CompletionEvent.id",
        lazy="dynamic",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def schedule(self) -> FrozenSet[int]:
        return frozenset(self.schedule_days or ALL_WEEKDAYS)

    @property
    def creation_day(self) -> date:
        return local_day(self.created_at, self.timezone)

    def is_scheduled(self, day: date) -> bool:
        return day.weekday() in self.schedule


class CompletionEvent(db.Model):
    """One completion interaction. Rows are only ever inserted."""

    __tablename__ = "habits_completion_event"
    __table_args__ = (
        db.Index("ix_habits_event_habit_day", "habit_id", "local_day", "id"),
        db.Index("ix_habits_event_user_day", "user_id", "local_day"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    habit_id: Mapped[int] = mapped_column(db.ForeignKey("habits_habit.id"), nullable=False)
    user_id: Mapped[int] = mapped_column(db.ForeignKey("user.id"), nullable=False)
    local_day: Mapped[date] = mapped_column(nullable=False)
    delta: Mapped[int] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(db.String(16), nullable=False, default=EVENT_KIND_INCREMENT)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    recorded_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    habit: Mapped[Habit] = relationship("Habit", back_populates="events")
