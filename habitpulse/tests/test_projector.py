from __future__ import annotations

import random
from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest

from habitpulse.domains.habits.ledger import completion_ledger, habit_projector
from habitpulse.domains.habits.projector import (
    HabitStateProjector,
    ProjectionMemo,
    fold_day,
    group_by_day,
    strict_run,
)

MONDAY = date(2026, 3, 2)
MONDAY_AT_NOON = datetime(2026, 3, 2, 12)


def _event(event_id, kind="increment", delta=1, habit_id=1, day=MONDAY):
    return SimpleNamespace(id=event_id, kind=kind, delta=delta, habit_id=habit_id, local_day=day)


# ==================== Pure fold ====================


@pytest.mark.unit
def test_fold_day_clamps_into_bounds():
    events = [_event(1), _event(2), _event(3), _event(4, "decrement", -1)]

    state = fold_day(1, MONDAY, 2, events)

    assert state.current_count == 1
    assert state.is_complete is False
    assert state.event_count == 4


@pytest.mark.unit
def test_fold_day_never_goes_negative():
    state = fold_day(1, MONDAY, 3, [_event(1, "decrement", -1), _event(2)])

    assert state.current_count == 1


@pytest.mark.unit
def test_fold_day_reset_zeroes_count():
    state = fold_day(1, MONDAY, 2, [_event(1), _event(2), _event(3, "reset")])

    assert state.current_count == 0
    assert state.is_complete is False


@pytest.mark.unit
def test_replay_in_any_interleaving_preserving_per_day_order_is_identical():
    events = [
        _event(1, habit_id=1),
        _event(2, habit_id=2),
        _event(3, "decrement", -1, habit_id=1),
        _event(4, habit_id=1, day=MONDAY + timedelta(days=1)),
        _event(5, habit_id=1),
        _event(6, habit_id=2),
    ]

    def states(seq):
        return {
            key: fold_day(key[0], key[1], 2, evs)
            for key, evs in group_by_day(seq).items()
        }

    baseline = states(events)
    shuffled = list(events)
    random.Random(7).shuffle(shuffled)

    assert states(shuffled) == baseline
    assert baseline[(1, MONDAY)].current_count == 1
    assert baseline[(2, MONDAY)].is_complete is True


@pytest.mark.unit
def test_strict_run_skips_unscheduled_and_stops_at_gap():
    complete = {MONDAY, MONDAY + timedelta(days=2), MONDAY + timedelta(days=4)}
    # Mon/Wed/Fri schedule.
    scheduled = lambda d: d.weekday() in (0, 2, 4)  # noqa: E731

    length, reached = strict_run(MONDAY + timedelta(days=4), MONDAY, scheduled, complete.__contains__)

    assert length == 3
    assert reached is False


@pytest.mark.unit
def test_strict_run_reports_reaching_stop_day():
    complete = {MONDAY + timedelta(days=i) for i in range(5)}

    length, reached = strict_run(
        MONDAY + timedelta(days=4),
        MONDAY - timedelta(days=30),
        lambda d: True,
        complete.__contains__,
        stop_at=MONDAY + timedelta(days=1),
    )

    assert (length, reached) == (3, True)


# ==================== Streaks against the ledger ====================


@pytest.mark.integration
def test_current_streak_counts_consecutive_complete_days(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user)
    for offset in range(4):
        complete(habit, MONDAY + timedelta(days=offset))

    assert habit_projector.current_streak(habit, MONDAY + timedelta(days=3)) == 4


@pytest.mark.integration
def test_streak_stops_at_older_incomplete_day(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user)
    reference = MONDAY + timedelta(days=9)
    for offset in range(5):
        complete(habit, reference - timedelta(days=offset))

    # Day six back has no events; earlier days do.
    complete(habit, reference - timedelta(days=6))
    complete(habit, reference - timedelta(days=7))

    assert habit_projector.current_streak(habit, reference) == 5


@pytest.mark.integration
def test_incomplete_reference_day_does_not_break_streak(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user)
    for offset in range(3):
        complete(habit, MONDAY + timedelta(days=offset))

    # Thursday is scheduled but not yet done.
    assert habit_projector.current_streak(habit, MONDAY + timedelta(days=3)) == 3


@pytest.mark.integration
def test_missed_scheduled_day_breaks_streak(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user)
    complete(habit, MONDAY)
    complete(habit, MONDAY + timedelta(days=2))
    complete(habit, MONDAY + timedelta(days=3))

    assert habit_projector.current_streak(habit, MONDAY + timedelta(days=3)) == 2


@pytest.mark.integration
def test_unscheduled_days_do_not_break_streak(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user, schedule_days=[0, 2, 4])
    complete(habit, MONDAY)
    complete(habit, MONDAY + timedelta(days=2))
    complete(habit, MONDAY + timedelta(days=4))
    complete(habit, MONDAY + timedelta(days=7))

    # Saturday and Sunday are off days.
    assert habit_projector.current_streak(habit, MONDAY + timedelta(days=7)) == 4


@pytest.mark.integration
def test_streak_is_bounded_by_creation_day(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user, created_at=MONDAY_AT_NOON)
    complete(habit, MONDAY)
    complete(habit, MONDAY + timedelta(days=1))

    assert habit_projector.current_streak(habit, MONDAY + timedelta(days=1)) == 2
    assert habit_projector.current_streak(habit, MONDAY - timedelta(days=1)) == 0


@pytest.mark.integration
def test_counter_day_below_target_breaks_streak(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user, "Water", kind="counter", target_count=3)
    complete(habit, MONDAY, times=3)
    complete(habit, MONDAY + timedelta(days=1), times=2)
    complete(habit, MONDAY + timedelta(days=2), times=3)

    assert habit_projector.current_streak(habit, MONDAY + timedelta(days=2)) == 1


@pytest.mark.integration
def test_append_invalidates_memoized_streak(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user)
    complete(habit, MONDAY)
    complete(habit, MONDAY + timedelta(days=2))
    wednesday = MONDAY + timedelta(days=2)
    assert habit_projector.current_streak(habit, wednesday) == 1

    complete(habit, MONDAY + timedelta(days=1))

    assert habit_projector.current_streak(habit, wednesday) == 3


@pytest.mark.integration
def test_long_streak_across_windows_matches_fresh_projector(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user)
    start = date(2026, 1, 10)
    days = [start + timedelta(days=i) for i in range(80)]
    for day in days:
        complete(habit, day)

    memoized = habit_projector
    # Warm anchors on the way up, then ask for the end.
    assert memoized.current_streak(habit, days[39]) == 40
    assert memoized.current_streak(habit, days[-1]) == 80
    fresh = HabitStateProjector(completion_ledger, ProjectionMemo())
    assert fresh.current_streak(habit, days[-1]) == 80


@pytest.mark.integration
def test_stats_summarise_history(make_user, make_habit, complete):
    user = make_user()
    habit = make_habit(user, created_at=MONDAY_AT_NOON)
    for offset in (0, 1, 2, 4, 5):
        complete(habit, MONDAY + timedelta(days=offset))

    stats = habit_projector.stats(habit, MONDAY + timedelta(days=5), window_days=7)

    assert stats["total_completions"] == 5
    assert stats["current_streak"] == 2
    assert stats["longest_streak"] == 3
    # Six scheduled days since creation, five complete.
    assert stats["completion_rate"] == round(5 / 6, 4)
    assert stats["last_seven_days"] == [False, True, True, True, False, True, True]
    assert stats["today"]["is_complete"] is True

