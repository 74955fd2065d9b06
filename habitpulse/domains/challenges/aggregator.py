"""Challenge-scoped progress rolled up from per-habit day states.

A participant earns credit only on days covered by one of their membership
intervals, clipped to the challenge window, and only through habits they
tagged to the challenge. Scores are recomputed from the ledger on every call.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from habitpulse.core.errors import ValidationError
from habitpulse.domains.challenges.models.challenge_models import (
    Challenge,
    ChallengeHabit,
    ChallengeMembership,
)
from habitpulse.domains.habits.models.habit_models import Habit
from habitpulse.domains.habits.projector import fold_day, group_by_day
from habitpulse.extensions import db

SCORE_PRECISION = 4

Interval = Tuple[date, date]


@dataclass(frozen=True)
class ChallengeParticipant:
    challenge_id: int
    user_id: int
    joined_at: datetime
    opt_out_of_leaderboard: bool = False


@dataclass(frozen=True)
class ChallengeProgress:
    challenge_id: int
    user_id: int
    as_of: date
    score: float
    completed_days: int
    credited_days: int
    is_member: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["as_of"] = self.as_of.isoformat()
        return data


def credited_intervals(
    memberships: Iterable[ChallengeMembership],
    start_day: date,
    end_day: date,
) -> List[Interval]:
    """Inclusive day ranges where a membership was active inside ``[start_day, end_day]``.

    A membership counts from its join day and stops counting on its leave day.
    Overlapping intervals are merged.
    """
    raw = []
    for membership in memberships:
        lo = max(membership.joined_day, start_day)
        hi = end_day
        if membership.left_day is not None:
            hi = min(hi, membership.left_day - timedelta(days=1))
        if lo <= hi:
            raw.append((lo, hi))
    merged: List[Interval] = []
    for lo, hi in sorted(raw):
        if merged and lo <= merged[-1][1] + timedelta(days=1):
            merged[-1] = (merged[-1][0], max(merged[-1][1], hi))
        else:
            merged.append((lo, hi))
    return merged


def _covered(intervals: Sequence[Interval], day: date) -> bool:
    return any(lo <= day <= hi for lo, hi in intervals)


def _credited_day_count(intervals: Sequence[Interval]) -> int:
    return sum((hi - lo).days + 1 for lo, hi in intervals)


class ChallengeProgressAggregator:
    def __init__(self, ledger) -> None:
        self.ledger = ledger

    def get_challenge(self, challenge_or_id) -> Challenge:
        if isinstance(challenge_or_id, Challenge):
            return challenge_or_id
        challenge = db.session.get(Challenge, challenge_or_id)
        if not challenge:
            raise ValidationError("not_found", "challenge")
        return challenge

    def progress(self, challenge_or_id, user_id: int, as_of: date) -> ChallengeProgress:
        challenge = self.get_challenge(challenge_or_id)
        return self.progress_many(challenge, [user_id], as_of)[user_id]

    def progress_many(
        self,
        challenge_or_id,
        user_ids: Sequence[int],
        as_of: date,
        since: Optional[date] = None,
    ) -> Dict[int, ChallengeProgress]:
        """Progress for several participants in one ledger read.

        ``since`` narrows the scored window further (leaderboard periods).
        """
        challenge = self.get_challenge(challenge_or_id)
        user_ids = list(dict.fromkeys(user_ids))
        window_start = max(challenge.start_day, since) if since else challenge.start_day
        window_end = challenge.window_end(as_of)

        memberships: Dict[int, List[ChallengeMembership]] = defaultdict(list)
        if user_ids:
            rows = ChallengeMembership.query.filter(
                ChallengeMembership.challenge_id == challenge.id,
                ChallengeMembership.user_id.in_(user_ids),
                ChallengeMembership.joined_day <= as_of,
            ).all()
            for row in rows:
                memberships[row.user_id].append(row)

        intervals = {
            user_id: credited_intervals(memberships.get(user_id, []), window_start, window_end)
            for user_id in user_ids
        }
        scores = self._score(challenge, intervals)

        result = {}
        for user_id in user_ids:
            score, completed = scores.get(user_id, (0.0, 0))
            result[user_id] = ChallengeProgress(
                challenge_id=challenge.id,
                user_id=user_id,
                as_of=as_of,
                score=round(score, SCORE_PRECISION),
                completed_days=completed,
                credited_days=_credited_day_count(intervals[user_id]),
                is_member=bool(memberships.get(user_id)),
            )
        return result

    def _score(
        self, challenge: Challenge, intervals: Dict[int, List[Interval]]
    ) -> Dict[int, Tuple[float, int]]:
        active = {user_id: spans for user_id, spans in intervals.items() if spans}
        if not active:
            return {}
        links = (
            db.session.query(ChallengeHabit, Habit)
            .join(Habit, Habit.id == ChallengeHabit.habit_id)
            .filter(
                ChallengeHabit.challenge_id == challenge.id,
                ChallengeHabit.user_id.in_(list(active)),
            )
            .all()
        )
        if not links:
            return {}
        habits = {habit.id: (link, habit) for link, habit in links if habit.user_id == link.user_id}
        lo = min(spans[0][0] for spans in active.values())
        hi = max(spans[-1][1] for spans in active.values())
        grouped = group_by_day(self.ledger.events_for_habits(list(habits), lo, hi))

        totals: Dict[int, List[float]] = defaultdict(lambda: [0.0, 0])
        for (habit_id, day), events in grouped.items():
            link, habit = habits[habit_id]
            if not _covered(active[habit.user_id], day):
                continue
            if day < habit.creation_day or not habit.is_scheduled(day):
                continue
            state = fold_day(habit_id, day, habit.target_count, events)
            bucket = totals[habit.user_id]
            if state.is_complete:
                bucket[0] += link.weight
                bucket[1] += 1
            elif challenge.partial_credit and state.current_count:
                bucket[0] += link.weight * state.current_count / state.target
        return {user_id: (score, int(done)) for user_id, (score, done) in totals.items()}

    def participants(self, challenge_or_id) -> Set[ChallengeParticipant]:
        """Open membership intervals, one per current participant."""
        challenge = self.get_challenge(challenge_or_id)
        rows = ChallengeMembership.query.filter(
            ChallengeMembership.challenge_id == challenge.id,
            ChallengeMembership.left_at.is_(None),
        ).all()
        return {
            ChallengeParticipant(
                challenge_id=row.challenge_id,
                user_id=row.user_id,
                joined_at=row.joined_at,
                opt_out_of_leaderboard=row.opt_out_of_leaderboard,
            )
            for row in rows
        }
