"""Aggregate platform statistics for administrators."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from sqlalchemy import func

from habitpulse.core.users.models import Organization, User
from habitpulse.domains.challenges.models.challenge_models import Challenge, ChallengeMembership
from habitpulse.domains.habits.models.habit_models import CompletionEvent, Habit
from habitpulse.extensions import db
from habitpulse.platform.outbox import status_counts


def _count(query) -> int:
    return int(query.scalar() or 0)


def platform_stats(as_of: Optional[date] = None) -> dict:
    as_of = as_of or date.today()
    week_start = as_of - timedelta(days=6)
    events = db.session.query(func.count(CompletionEvent.id))
    return {
        "as_of": as_of.isoformat(),
        "users": {
            "total": _count(db.session.query(func.count(User.id))),
            "active": _count(db.session.query(func.count(User.id)).filter(User.is_active.is_(True))),
            "organizations": _count(db.session.query(func.count(Organization.id))),
        },
        "habits": {
            "active": _count(db.session.query(func.count(Habit.id)).filter(Habit.deleted_at.is_(None))),
            "deleted": _count(db.session.query(func.count(Habit.id)).filter(Habit.deleted_at.isnot(None))),
        },
        "completions": {
            "events_total": _count(events),
            "events_today": _count(events.filter(CompletionEvent.local_day == as_of)),
            "events_last_7_days": _count(
                events.filter(CompletionEvent.local_day >= week_start, CompletionEvent.local_day <= as_of)
            ),
            "active_users_last_7_days": _count(
                db.session.query(func.count(func.distinct(CompletionEvent.user_id))).filter(
                    CompletionEvent.local_day >= week_start, CompletionEvent.local_day <= as_of
                )
            ),
        },
        "challenges": {
            "total": _count(db.session.query(func.count(Challenge.id))),
            "active": _count(db.session.query(func.count(Challenge.id)).filter(Challenge.running_on(as_of))),
            "active_memberships": _count(
                db.session.query(func.count(ChallengeMembership.id)).filter(ChallengeMembership.left_at.is_(None))
            ),
        },
        "outbox": status_counts(),
    }
