"""Habit services: definitions, completions and derived state with outbox events."""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable, List, Optional, Union

from flask import current_app

from habitpulse.core.errors import Rejected, ValidationError
from habitpulse.core.users.services import get_user, validate_timezone
from habitpulse.core.utils.dates import as_aware_utc, iter_days, today_in
from habitpulse.domains.habits.events import HABITS_HABIT_CREATED, HABITS_HABIT_DELETED
from habitpulse.domains.habits.ledger import (
    OVERFLOW_POLICIES,
    completion_ledger,
    habit_projector,
)
from habitpulse.domains.habits.models.habit_models import (
    ALL_WEEKDAYS,
    HABIT_KIND_COUNTER,
    HABIT_KIND_SIMPLE,
    HABIT_KINDS,
    Habit,
)
from habitpulse.domains.habits.projector import HabitDayState
from habitpulse.extensions import db
from habitpulse.platform.outbox import enqueue as enqueue_outbox


def create_habit(
    user_id: int,
    *,
    name: str,
    description: str | None = None,
    kind: str = HABIT_KIND_SIMPLE,
    target_count: int | None = None,
    schedule_days: Optional[Iterable[int]] = None,
    timezone: str | None = None,
    overflow_policy: str | None = None,
    created_at: datetime | None = None,
) -> Habit:
    user = get_user(user_id)
    if not user:
        raise ValidationError("not_found", "user")
    name_norm = (name or "").strip()
    if not name_norm:
        raise ValidationError("validation_error", "name")
    if kind not in HABIT_KINDS:
        raise ValidationError("validation_error", "kind")
    target = _target_for(kind, target_count)
    days = sorted(set(schedule_days if schedule_days is not None else ALL_WEEKDAYS))
    if not days or any(day not in ALL_WEEKDAYS for day in days):
        raise ValidationError("validation_error", "schedule_days")
    if overflow_policy is not None and overflow_policy not in OVERFLOW_POLICIES:
        raise ValidationError("validation_error", "overflow_policy")
    tz_name = validate_timezone(
        timezone or user.timezone or current_app.config.get("DEFAULT_TIMEZONE", "UTC")
    )
    existing = Habit.query.filter_by(user_id=user_id, name=name_norm, deleted_at=None).first()
    if existing:
        raise ValidationError("duplicate")

    habit = Habit(
        user_id=user_id,
        name=name_norm,
        description=(description or "").strip() or None,
        kind=kind,
        target_count=target,
        schedule_days=days,
        timezone=tz_name,
        overflow_policy=overflow_policy,
    )
    if created_at is not None:
        habit.created_at = as_aware_utc(created_at).replace(tzinfo=None)
    db.session.add(habit)
    db.session.flush()
    enqueue_outbox(
        HABITS_HABIT_CREATED,
        {
            "habit_id": habit.id,
            "user_id": user_id,
            "name": habit.name,
            "kind": habit.kind,
            "target_count": habit.target_count,
            "schedule_days": habit.schedule_days,
            "timezone": habit.timezone,
            "created_at": habit.created_at.isoformat(),
        },
        user_id=user_id,
    )
    db.session.commit()
    return habit


def _target_for(kind: str, target_count: int | None) -> int:
    if kind == HABIT_KIND_SIMPLE:
        if target_count not in (None, 1):
            raise ValidationError("validation_error", "target_count")
        return 1
    if kind == HABIT_KIND_COUNTER and (target_count is None or target_count < 1):
        raise ValidationError("validation_error", "target_count")
    return int(target_count)


def get_habit(user_id: int, habit_id: int, include_deleted: bool = True) -> Optional[Habit]:
    habit = Habit.query.filter_by(id=habit_id, user_id=user_id).first()
    if habit and habit.is_deleted and not include_deleted:
        return None
    return habit


def _require_habit(user_id: int, habit_id: int) -> Habit:
    habit = get_habit(user_id, habit_id)
    if not habit:
        raise ValidationError("not_found", "habit")
    return habit


def delete_habit(user_id: int, habit_id: int) -> bool:
    """Soft delete; ledger history stays for audit and past scores."""
    habit = get_habit(user_id, habit_id, include_deleted=False)
    if not habit:
        return False
    habit.deleted_at = datetime.utcnow()
    enqueue_outbox(
        HABITS_HABIT_DELETED,
        {
            "habit_id": habit.id,
            "user_id": user_id,
            "deleted_at": habit.deleted_at.isoformat(),
        },
        user_id=user_id,
    )
    db.session.commit()
    return True


def record_completion(
    user_id: int,
    habit_id: int,
    delta: int = 1,
    client_timestamp: Optional[datetime] = None,
) -> Union[HabitDayState, Rejected]:
    """Append one interaction and return the resulting day state."""
    result = completion_ledger.append(habit_id, user_id, delta, client_timestamp)
    if not result.accepted:
        return result
    habit = db.session.get(Habit, habit_id)
    return habit_projector.project(habit, result.event.local_day)


def increment(user_id: int, habit_id: int, client_timestamp: Optional[datetime] = None):
    return record_completion(user_id, habit_id, 1, client_timestamp)


def decrement(user_id: int, habit_id: int, client_timestamp: Optional[datetime] = None):
    return record_completion(user_id, habit_id, -1, client_timestamp)


def get_habit_state(user_id: int, habit_id: int, day: Optional[date] = None) -> HabitDayState:
    habit = _require_habit(user_id, habit_id)
    return habit_projector.project(habit, day or today_in(habit.timezone))


def get_habit_stats(user_id: int, habit_id: int, reference_day: Optional[date] = None) -> dict:
    habit = _require_habit(user_id, habit_id)
    return habit_projector.stats(habit, reference_day or today_in(habit.timezone))


def get_habit_history(user_id: int, habit_id: int, start: date, end: date) -> List[HabitDayState]:
    """Day states for every scheduled day in ``[start, end]``, newest first."""
    habit = _require_habit(user_id, habit_id)
    states = habit_projector.day_states(habit, start, end)
    history = [
        states.get(day) or HabitDayState(habit.id, day, 0, habit.target_count, False, 0)
        for day in iter_days(max(start, habit.creation_day), end)
        if habit.is_scheduled(day)
    ]
    return list(reversed(history))


def list_habits(user_id: int, include_deleted: bool = False) -> List[dict]:
    query = Habit.query.filter_by(user_id=user_id)
    if not include_deleted:
        query = query.filter(Habit.deleted_at.is_(None))
    payload = []
    for habit in query.order_by(Habit.id).all():
        today = today_in(habit.timezone)
        payload.append(
            {
                "habit": habit,
                "today": habit_projector.project(habit, today),
                "current_streak": habit_projector.current_streak(habit, today),
            }
        )
    return payload
