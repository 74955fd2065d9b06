"""Per-habit, per-day derived state.

Everything here is a read over a ledger snapshot: the day state is a fold of
that day's events in sequence order, and streaks and stats are walks over
day states. Nothing is stored; a per-habit memo keyed by the habit's ledger
high-water mark keeps repeated streak walks cheap.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from habitpulse.core.utils.dates import iter_days
from habitpulse.domains.habits.models.habit_models import (
    EVENT_KIND_DECREMENT,
    EVENT_KIND_RESET,
    CompletionEvent,
    Habit,
)

# Days loaded per round trip while walking a streak backwards.
STREAK_WINDOW_DAYS = 32

_MISSING = object()


@dataclass(frozen=True)
class HabitDayState:
    habit_id: int
    day: date
    current_count: int
    target: int
    is_complete: bool
    event_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["day"] = self.day.isoformat()
        return data


def fold_day(habit_id: int, day: date, target: int, events: Iterable[CompletionEvent]) -> HabitDayState:
    """Apply a day's events in sequence order, clamping into ``[0, target]``."""
    count = 0
    seen = 0
    for event in events:
        seen += 1
        if event.kind == EVENT_KIND_RESET:
            count = 0
        elif event.kind == EVENT_KIND_DECREMENT or event.delta < 0:
            count = max(0, count - 1)
        else:
            count = min(target, count + 1)
    return HabitDayState(
        habit_id=habit_id,
        day=day,
        current_count=count,
        target=target,
        is_complete=count == target,
        event_count=seen,
    )


def group_by_day(events: Iterable[CompletionEvent]) -> Dict[Tuple[int, date], List[CompletionEvent]]:
    grouped: Dict[Tuple[int, date], List[CompletionEvent]] = defaultdict(list)
    for event in sorted(events, key=lambda e: e.id):
        grouped[(event.habit_id, event.local_day)].append(event)
    return grouped


def strict_run(
    reference_day: date,
    floor_day: date,
    is_scheduled: Callable[[date], bool],
    is_complete: Callable[[date], bool],
    stop_at: Optional[date] = None,
) -> Tuple[int, bool]:
    """Count consecutive complete scheduled days ending at ``reference_day``.

    Unscheduled days are skipped. The walk ends at the first incomplete
    scheduled day, below ``floor_day``, or on reaching ``stop_at``; the second
    element tells whether ``stop_at`` was reached with the run intact.
    """
    length = 0
    day = reference_day
    while day >= floor_day:
        if stop_at is not None and day == stop_at:
            return length, True
        if is_scheduled(day):
            if not is_complete(day):
                return length, False
            length += 1
        day -= timedelta(days=1)
    return length, False


class ProjectionMemo:
    """Derived values per habit, valid only for one ledger version of that habit."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[int, Tuple[int, Dict[Hashable, Any]]] = {}

    def get(self, habit_id: int, version: int, key: Hashable) -> Any:
        with self._lock:
            entry = self._entries.get(habit_id)
            if not entry or entry[0] != version:
                return _MISSING
            return entry[1].get(key, _MISSING)

    def put(self, habit_id: int, version: int, key: Hashable, value: Any) -> None:
        with self._lock:
            entry = self._entries.get(habit_id)
            if not entry or entry[0] != version:
                entry = (version, {})
                self._entries[habit_id] = entry
            entry[1][key] = value

    def latest(self, habit_id: int, version: int, prefix: str) -> List[Tuple[Hashable, Any]]:
        with self._lock:
            entry = self._entries.get(habit_id)
            if not entry or entry[0] != version:
                return []
            return [(k, v) for k, v in entry[1].items() if isinstance(k, tuple) and k[0] == prefix]

    def invalidate(self, habit_id: int) -> None:
        with self._lock:
            self._entries.pop(habit_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class HabitStateProjector:
    """Read side of the ledger for one habit at a time."""

    def __init__(self, ledger, memo: Optional[ProjectionMemo] = None) -> None:
        self.ledger = ledger
        self.memo = memo or ProjectionMemo()

    # -- day state -------------------------------------------------------

    def project(self, habit: Habit, day: date) -> HabitDayState:
        events = self.ledger.events_for(habit.id, day, day)
        return fold_day(habit.id, day, habit.target_count, events)

    def day_states(self, habit: Habit, start: date, end: date) -> Dict[date, HabitDayState]:
        """States for days in ``[start, end]`` that have events; other days are empty."""
        grouped = group_by_day(self.ledger.events_for(habit.id, start, end))
        return {
            day: fold_day(habit.id, day, habit.target_count, events)
            for (_, day), events in grouped.items()
        }

    def completed_days(self, habit: Habit, start: date, end: date) -> List[date]:
        states = self.day_states(habit, start, end)
        return sorted(day for day, state in states.items() if state.is_complete)

    def completed_day_counts(
        self, habits: Sequence[Habit], start: Optional[date], end: date
    ) -> Dict[int, int]:
        """Completed habit-days per owner across many habits in one read."""
        by_id = {habit.id: habit for habit in habits}
        totals: Dict[int, int] = {habit.user_id: 0 for habit in habits}
        if not by_id:
            return totals
        grouped = group_by_day(self.ledger.events_for_habits(list(by_id), start, end))
        for (habit_id, day), events in grouped.items():
            habit = by_id[habit_id]
            if fold_day(habit_id, day, habit.target_count, events).is_complete:
                totals[habit.user_id] += 1
        return totals

    # -- streaks ---------------------------------------------------------

    def current_streak(self, habit: Habit, reference_day: date) -> int:
        """Consecutive complete scheduled days ending at ``reference_day``.

        A scheduled reference day that is not complete yet is still in
        progress, so the run is measured from the scheduled day before it.
        """
        if reference_day < habit.creation_day:
            return 0
        if habit.is_scheduled(reference_day) and not self.project(habit, reference_day).is_complete:
            reference_day -= timedelta(days=1)
        return self._strict_run(habit, reference_day)

    def _strict_run(self, habit: Habit, reference_day: date) -> int:
        floor = habit.creation_day
        if reference_day < floor:
            return 0
        version = self.ledger.habit_version(habit.id)
        cached = self.memo.get(habit.id, version, ("run", reference_day))
        if cached is not _MISSING:
            return cached

        # Reuse the closest earlier anchor so only the days after it are walked.
        anchors = [
            (key[1], length)
            for key, length in self.memo.latest(habit.id, version, "run")
            if key[1] < reference_day
        ]
        anchor_day, anchor_length = max(anchors) if anchors else (None, 0)

        total = 0
        window_end = reference_day
        while window_end >= floor:
            window_start = max(floor, window_end - timedelta(days=STREAK_WINDOW_DAYS - 1))
            if anchor_day is not None and anchor_day >= window_start:
                window_start = anchor_day + timedelta(days=1)
            complete = set(self.completed_days(habit, window_start, window_end)) if window_start <= window_end else set()
            stop = window_start - timedelta(days=1)
            length, reached = strict_run(
                window_end,
                floor,
                habit.is_scheduled,
                complete.__contains__,
                stop_at=stop,
            )
            total += length
            if not reached:
                break
            if anchor_day is not None and stop == anchor_day:
                total += anchor_length
                break
            window_end = stop

        self.memo.put(habit.id, version, ("run", reference_day), total)
        return total

    def longest_streak(self, habit: Habit, through: date) -> int:
        floor = habit.creation_day
        if through < floor:
            return 0
        complete = set(self.completed_days(habit, floor, through))
        best = current = 0
        for day in iter_days(floor, through):
            if not habit.is_scheduled(day):
                continue
            if day in complete:
                current += 1
                best = max(best, current)
            else:
                current = 0
        return best

    # -- stats -----------------------------------------------------------

    def scheduled_days(self, habit: Habit, start: date, end: date) -> List[date]:
        start = max(start, habit.creation_day)
        return [day for day in iter_days(start, end) if habit.is_scheduled(day)]

    def completion_rate(self, habit: Habit, start: date, end: date) -> float:
        scheduled = self.scheduled_days(habit, start, end)
        if not scheduled:
            return 0.0
        complete = set(self.completed_days(habit, scheduled[0], scheduled[-1]))
        return round(sum(1 for day in scheduled if day in complete) / len(scheduled), 4)

    def last_seven_days(self, habit: Habit, reference_day: date) -> List[bool]:
        start = reference_day - timedelta(days=6)
        complete = set(self.completed_days(habit, start, reference_day))
        return [day in complete for day in iter_days(start, reference_day)]

    def stats(self, habit: Habit, reference_day: date, window_days: int = 30) -> Dict[str, Any]:
        window_start = reference_day - timedelta(days=max(window_days, 1) - 1)
        return {
            "total_completions": len(self.completed_days(habit, habit.creation_day, reference_day)),
            "current_streak": self.current_streak(habit, reference_day),
            "longest_streak": self.longest_streak(habit, reference_day),
            "completion_rate": self.completion_rate(habit, window_start, reference_day),
            "last_seven_days": self.last_seven_days(habit, reference_day),
            "today": self.project(habit, reference_day).to_dict(),
        }
