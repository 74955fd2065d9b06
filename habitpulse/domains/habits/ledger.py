"""Append-only completion ledger.

``append`` is the only write path for progress. Each append runs inside a
critical section keyed by (user, habit, local day): an in-process keyed lock
plus a row lock on the habit for databases that honour ``FOR UPDATE``. The
event and its outbox message commit in one transaction, so readers observe
either the whole event or none of it.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from habitpulse.core.errors import (
    Accepted,
    AppendResult,
    InvariantViolation,
    Rejected,
    ValidationError,
)
from habitpulse.core.utils.dates import as_aware_utc, local_day, utcnow
from habitpulse.core.utils.locks import KeyedLock
from habitpulse.domains.habits.events import HABITS_COMPLETION_RECORDED
from habitpulse.domains.habits.models.habit_models import (
    EVENT_KIND_DECREMENT,
    EVENT_KIND_INCREMENT,
    EVENT_KIND_RESET,
    CompletionEvent,
    Habit,
)
from habitpulse.domains.habits.projector import HabitStateProjector, ProjectionMemo, fold_day
from habitpulse.extensions import db
from habitpulse.platform.outbox import enqueue as enqueue_outbox

logger = logging.getLogger(__name__)

OVERFLOW_CLAMP = "clamp"
OVERFLOW_RESET = "reset"
OVERFLOW_REJECT = "reject"
OVERFLOW_POLICIES = (OVERFLOW_CLAMP, OVERFLOW_RESET, OVERFLOW_REJECT)


class CompletionLedger:
    def __init__(self, locks: Optional[KeyedLock] = None, memo: Optional[ProjectionMemo] = None) -> None:
        self.locks = locks or KeyedLock()
        self.memo = memo or ProjectionMemo()

    # -- write -----------------------------------------------------------

    def append(
        self,
        habit_id: int,
        user_id: int,
        delta: int,
        occurred_at: Optional[datetime] = None,
    ) -> AppendResult:
        if delta not in (1, -1):
            return self._reject(ValidationError("invalid_delta"), habit_id, user_id)
        habit = db.session.get(Habit, habit_id)
        if not habit or habit.user_id != user_id:
            return self._reject(ValidationError("not_found", "habit"), habit_id, user_id)
        if habit.is_deleted:
            return self._reject(InvariantViolation("habit_deleted"), habit_id, user_id)

        now = utcnow()
        occurred_at = as_aware_utc(occurred_at or now)
        if occurred_at > now + self.max_clock_skew():
            return self._reject(
                InvariantViolation("future_timestamp", occurred_at.isoformat()), habit_id, user_id
            )
        day = local_day(occurred_at, habit.timezone)
        if day < habit.creation_day:
            return self._reject(InvariantViolation("before_creation", day.isoformat()), habit_id, user_id)
        if not habit.is_scheduled(day):
            return self._reject(InvariantViolation("not_scheduled", day.isoformat()), habit_id, user_id)

        with self.locks.hold((user_id, habit_id, day)):
            try:
                return self._append_locked(habit, day, delta, occurred_at)
            except SQLAlchemyError:
                db.session.rollback()
                logger.exception("Ledger append failed for habit %s on %s", habit_id, day)
                raise

    def _append_locked(self, habit: Habit, day: date, delta: int, occurred_at: datetime) -> AppendResult:
        # Serialises writers across processes; a no-op on SQLite.
        db.session.query(Habit.id).filter(Habit.id == habit.id).with_for_update().one()
        before = fold_day(habit.id, day, habit.target_count, self.events_for(habit.id, day, day))

        if delta < 0:
            if before.current_count == 0:
                db.session.rollback()
                return self._reject(InvariantViolation("negative_count", day.isoformat()), habit.id, habit.user_id)
            kind = EVENT_KIND_DECREMENT
        elif before.is_complete:
            policy = self.overflow_policy(habit)
            if policy == OVERFLOW_REJECT:
                db.session.rollback()
                return self._reject(InvariantViolation("target_reached", day.isoformat()), habit.id, habit.user_id)
            kind = EVENT_KIND_RESET if policy == OVERFLOW_RESET else EVENT_KIND_INCREMENT
        else:
            kind = EVENT_KIND_INCREMENT

        event = CompletionEvent(
            habit_id=habit.id,
            user_id=habit.user_id,
            local_day=day,
            delta=delta,
            kind=kind,
            occurred_at=occurred_at.replace(tzinfo=None),
        )
        db.session.add(event)
        db.session.flush()
        after = fold_day(habit.id, day, habit.target_count, self.events_for(habit.id, day, day))
        enqueue_outbox(
            HABITS_COMPLETION_RECORDED,
            {
                "event_id": event.id,
                "habit_id": habit.id,
                "habit_name": habit.name,
                "user_id": habit.user_id,
                "local_day": day.isoformat(),
                "kind": kind,
                "current_count": after.current_count,
                "target": after.target,
                "is_complete": after.is_complete,
            },
            user_id=habit.user_id,
        )
        db.session.commit()
        self.memo.invalidate(habit.id)
        return Accepted(event)

    def _reject(self, error, habit_id: int, user_id: int) -> Rejected:
        logger.info("Rejected completion for habit %s user %s: %s", habit_id, user_id, error.code)
        return Rejected(error)

    @staticmethod
    def max_clock_skew() -> timedelta:
        """How far ahead of server time a client timestamp may run."""
        return timedelta(seconds=float(current_app.config.get("COMPLETION_MAX_CLOCK_SKEW_SECONDS", 300)))

    @staticmethod
    def overflow_policy(habit: Habit) -> str:
        policy = habit.overflow_policy or current_app.config.get("HABIT_OVERFLOW_POLICY", OVERFLOW_CLAMP)
        return policy if policy in OVERFLOW_POLICIES else OVERFLOW_CLAMP

    # -- read ------------------------------------------------------------

    def events_for(
        self, habit_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> List[CompletionEvent]:
        return self.events_for_habits([habit_id], start, end)

    def events_for_habits(
        self, habit_ids: Sequence[int], start: Optional[date] = None, end: Optional[date] = None
    ) -> List[CompletionEvent]:
        if not habit_ids:
            return []
        query = CompletionEvent.query.filter(CompletionEvent.habit_id.in_(list(habit_ids)))
        if start is not None:
            query = query.filter(CompletionEvent.local_day >= start)
        if end is not None:
            query = query.filter(CompletionEvent.local_day <= end)
        return query.order_by(CompletionEvent.local_day, CompletionEvent.id).all()

    def habit_version(self, habit_id: int) -> int:
        return int(
            db.session.query(func.max(CompletionEvent.id))
            .filter(CompletionEvent.habit_id == habit_id)
            .scalar()
            or 0
        )

    def high_water_mark(self) -> int:
        return int(db.session.query(func.max(CompletionEvent.id)).scalar() or 0)


completion_ledger = CompletionLedger()
habit_projector = HabitStateProjector(completion_ledger, memo=completion_ledger.memo)
