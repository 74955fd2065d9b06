from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

pytestmark = pytest.mark.integration

from habitpulse.core.errors import ValidationError
from habitpulse.core.users.services import create_organization
from habitpulse.domains.challenges import services as challenge_services
from habitpulse.domains.challenges.services import challenge_aggregator
from habitpulse.domains.habits.ledger import completion_ledger, habit_projector
from habitpulse.domains.social import services as social_services
from habitpulse.domains.social.leaderboard import (
    ANONYMOUS_NAME,
    LeaderboardRanker,
    Scope,
    ScoreCache,
    leaderboard_ranker,
)

AS_OF = date(2026, 3, 10)
GLOBAL = Scope.parse("global")


def _score(complete, make_habit, user, days: int, end: date = AS_OF):
    habit = make_habit(user, f"habit-{user.id}")
    for offset in range(days):
        complete(habit, end - timedelta(days=offset))
    return habit


def _names(entries):
    return [(e.rank, e.display_name, e.score) for e in entries]


@pytest.fixture()
def crew(make_user, make_habit, complete):
    users = {name: make_user(name) for name in ("alice", "bob", "carol", "dave")}
    _score(complete, make_habit, users["alice"], 3)
    _score(complete, make_habit, users["bob"], 1)
    _score(complete, make_habit, users["carol"], 3)
    return users


def test_global_ranking_orders_by_score_then_creation(crew):
    entries = leaderboard_ranker.rank(GLOBAL, crew["dave"].id, AS_OF)

    assert _names(entries) == [
        (1, "alice", 3),
        (2, "carol", 3),
        (3, "bob", 1),
        (4, "dave", 0),
    ]
    assert [e.is_current_user for e in entries] == [False, False, False, True]


def test_hidden_subject_is_excluded_and_ranks_stay_dense(crew):
    social_services.set_privacy(crew["carol"].id, "global", "hidden")

    entries = leaderboard_ranker.rank(GLOBAL, crew["alice"].id, AS_OF)

    assert _names(entries) == [(1, "alice", 3), (2, "bob", 1), (3, "dave", 0)]
    assert sorted(e.rank for e in entries) == list(range(1, len(entries) + 1))


def test_anonymous_subject_keeps_rank_without_identity(crew):
    social_services.set_privacy(crew["carol"].id, "global", "anonymous_score")

    entries = leaderboard_ranker.rank(GLOBAL, crew["bob"].id, AS_OF)

    masked = entries[1]
    assert masked.rank == 2
    assert masked.user_id is None
    assert masked.display_name == ANONYMOUS_NAME
    assert masked.score == 3
    assert crew["carol"].id not in {e.user_id for e in entries}


@pytest.mark.parametrize("level", ["hidden", "anonymous_score"])
def test_viewer_always_sees_own_row_unmasked(crew, level):
    social_services.set_privacy(crew["carol"].id, "global", level)

    entries = leaderboard_ranker.rank(GLOBAL, crew["carol"].id, AS_OF)

    mine = [e for e in entries if e.is_current_user]
    assert len(mine) == 1
    assert mine[0].user_id == crew["carol"].id
    assert mine[0].display_name == "carol"


def test_privacy_change_applies_on_next_request(crew):
    first = leaderboard_ranker.rank(GLOBAL, crew["dave"].id, AS_OF)
    social_services.set_privacy(crew["alice"].id, "global", "hidden")
    second = leaderboard_ranker.rank(GLOBAL, crew["dave"].id, AS_OF)

    assert "alice" in {e.display_name for e in first}
    assert "alice" not in {e.display_name for e in second}


def test_friends_scope_includes_only_mutual_friends_and_self(crew):
    alice, bob, carol = crew["alice"], crew["bob"], crew["carol"]
    social_services.add_friend(alice.id, bob.id)
    social_services.add_friend(bob.id, alice.id)
    social_services.add_friend(alice.id, carol.id)

    entries = leaderboard_ranker.rank(Scope.parse("friends"), alice.id, AS_OF)

    assert _names(entries) == [(1, "alice", 3), (2, "bob", 1)]


def test_friends_scope_for_user_without_friends_is_just_self(crew):
    entries = leaderboard_ranker.rank(Scope.parse("friends"), crew["dave"].id, AS_OF)

    assert _names(entries) == [(1, "dave", 0)]


def test_organization_scope_defaults_to_viewer_organization(make_user, make_habit, complete):
    acme = create_organization("Acme")
    globex = create_organization("Globex")
    ann = make_user("ann", organization_id=acme.id)
    ben = make_user("ben", organization_id=acme.id)
    make_user("gus", organization_id=globex.id)
    _score(complete, make_habit, ben, 2)

    entries = leaderboard_ranker.rank(Scope.parse("organization"), ann.id, AS_OF)

    assert _names(entries) == [(1, "ben", 2), (2, "ann", 0)]


def test_organization_scope_refuses_another_organization(make_user):
    acme = create_organization("Acme")
    globex = create_organization("Globex")
    ann = make_user("ann", organization_id=acme.id)
    make_user("gus", organization_id=globex.id)

    own = leaderboard_ranker.rank(Scope.parse("organization", acme.id), ann.id, AS_OF)
    assert [e.display_name for e in own] == ["ann"]

    with pytest.raises(ValidationError) as excinfo:
        leaderboard_ranker.rank(Scope.parse("organization", globex.id), ann.id, AS_OF)
    assert excinfo.value.code == "not_found"


def test_organization_scope_without_organization_is_rejected(crew):
    with pytest.raises(ValidationError):
        leaderboard_ranker.rank(Scope.parse("organization"), crew["alice"].id, AS_OF)


def test_weekly_period_only_scores_recent_days(make_user, make_habit, complete):
    old = make_user("old")
    recent = make_user("recent")
    _score(complete, make_habit, old, 5, end=AS_OF - timedelta(days=10))
    _score(complete, make_habit, recent, 2)

    all_time = leaderboard_ranker.rank(GLOBAL, old.id, AS_OF)
    weekly = leaderboard_ranker.rank(GLOBAL, old.id, AS_OF, period="weekly")

    assert _names(all_time) == [(1, "old", 5), (2, "recent", 2)]
    assert _names(weekly) == [(1, "recent", 2), (2, "old", 0)]


def test_deleted_habits_still_count_toward_global_score(make_user, make_habit, complete):
    from habitpulse.domains.habits import services as habit_services

    user = make_user()
    habit = _score(complete, make_habit, user, 2)
    habit_services.delete_habit(user.id, habit.id)

    assert leaderboard_ranker.rank(GLOBAL, user.id, AS_OF)[0].score == 2


def _challenge(make_user):
    host = make_user("host")
    return challenge_services.create_challenge(host.id, title="Cold Showers", start_day=date(2026, 3, 1))


def _participate(user, challenge, make_habit, complete, joined: datetime, days: int):
    habit = make_habit(user, f"shower-{user.id}")
    challenge_services.join_challenge(user.id, challenge.id, joined_at=joined)
    challenge_services.tag_habit(user.id, challenge.id, habit.id)
    for offset in range(days):
        complete(habit, AS_OF - timedelta(days=offset))


def test_challenge_scope_ties_break_on_earliest_join(make_user, make_habit, complete):
    challenge = _challenge(make_user)
    early = make_user("early")
    late = make_user("late")
    # Created first, joined last.
    _participate(late, challenge, make_habit, complete, datetime(2026, 3, 5, 18), days=3)
    _participate(early, challenge, make_habit, complete, datetime(2026, 3, 5, 9), days=3)
    outsider = make_user("outsider")
    _score(complete, make_habit, outsider, 9)

    entries = leaderboard_ranker.rank(Scope.parse("challenge", challenge.id), late.id, AS_OF)

    assert _names(entries) == [(1, "early", 3), (2, "late", 3)]


def test_challenge_opt_out_hides_participant_from_others(make_user, make_habit, complete):
    challenge = _challenge(make_user)
    shy = make_user("shy")
    loud = make_user("loud")
    _participate(shy, challenge, make_habit, complete, datetime(2026, 3, 2, 9), days=4)
    _participate(loud, challenge, make_habit, complete, datetime(2026, 3, 2, 10), days=1)
    challenge_services.set_leaderboard_opt_out(shy.id, challenge.id, True)
    scope = Scope.parse("challenge", challenge.id)

    seen_by_loud = leaderboard_ranker.rank(scope, loud.id, AS_OF)
    seen_by_shy = leaderboard_ranker.rank(scope, shy.id, AS_OF)

    assert _names(seen_by_loud) == [(1, "loud", 1)]
    assert _names(seen_by_shy) == [(1, "shy", 4), (2, "loud", 1)]


def test_departed_participants_leave_the_challenge_board(make_user, make_habit, complete):
    challenge = _challenge(make_user)
    stayer = make_user("stayer")
    leaver = make_user("leaver")
    _participate(stayer, challenge, make_habit, complete, datetime(2026, 3, 2, 9), days=1)
    _participate(leaver, challenge, make_habit, complete, datetime(2026, 3, 2, 9), days=3)
    challenge_services.leave_challenge(leaver.id, challenge.id, left_at=datetime(2026, 3, 10, 20))

    entries = leaderboard_ranker.rank(Scope.parse("challenge", challenge.id), stayer.id, AS_OF)

    assert _names(entries) == [(1, "stayer", 1)]


def test_challenge_scope_in_organization_uses_organization_privacy(make_user, make_habit, complete):
    acme = create_organization("Acme")
    host = make_user("host", organization_id=acme.id)
    challenge = challenge_services.create_challenge(
        host.id, title="Acme Walk", start_day=date(2026, 3, 1), organization_id=acme.id
    )
    member = make_user("member", organization_id=acme.id)
    _participate(host, challenge, make_habit, complete, datetime(2026, 3, 2, 9), days=2)
    _participate(member, challenge, make_habit, complete, datetime(2026, 3, 2, 9), days=1)
    social_services.set_privacy(host.id, "global", "hidden")
    social_services.set_privacy(host.id, "organization", "anonymous_score")

    entries = leaderboard_ranker.rank(Scope.parse("challenge", challenge.id), member.id, AS_OF)

    assert _names(entries) == [(1, ANONYMOUS_NAME, 2), (2, "member", 1)]


def test_unknown_scope_and_missing_challenge_are_validation_errors(crew):
    with pytest.raises(ValidationError):
        Scope.parse("galaxy")
    with pytest.raises(ValidationError):
        Scope.parse("challenge")
    with pytest.raises(ValidationError):
        leaderboard_ranker.rank(Scope.parse("challenge", 999), crew["alice"].id, AS_OF)


def test_scores_are_cached_but_privacy_is_not(app, make_user, make_habit, complete):
    app.config["LEADERBOARD_CACHE_SECONDS"] = 60
    now = {"t": 1000.0}
    ranker = LeaderboardRanker(
        completion_ledger,
        habit_projector,
        challenge_aggregator,
        cache=ScoreCache(clock=lambda: now["t"]),
    )
    ada = make_user("ada")
    bea = make_user("bea")
    habit = _score(complete, make_habit, ada, 1)

    assert _names(ranker.rank(GLOBAL, bea.id, AS_OF))[0] == (1, "ada", 1)

    complete(habit, AS_OF - timedelta(days=1))
    social_services.set_privacy(ada.id, "global", "anonymous_score")
    cached = ranker.rank(GLOBAL, bea.id, AS_OF)
    # Score lags one cycle; masking is already live.
    assert _names(cached)[0] == (1, ANONYMOUS_NAME, 1)

    now["t"] += 61
    assert _names(ranker.rank(GLOBAL, bea.id, AS_OF))[0] == (1, ANONYMOUS_NAME, 2)



@pytest.mark.unit
def test_score_cache_sweeps_expired_entries_on_write():
    now = {"t": 0.0}
    cache = ScoreCache(clock=lambda: now["t"])

    for day in range(100):
        cache.put(("friends", day), {1: float(day)}, ttl=30)
        now["t"] += 60

    assert len(cache) == 1
    assert cache.get(("friends", 99), ttl=30) is None
    cache.put(("friends", 100), {1: 100.0}, ttl=30)
    assert cache.get(("friends", 100), ttl=30) == {1: 100.0}
    assert len(cache) == 1


def test_ranking_across_days_keeps_cache_bounded(app, crew):
    app.config["LEADERBOARD_CACHE_SECONDS"] = 30
    now = {"t": 0.0}
    ranker = LeaderboardRanker(
        completion_ledger, habit_projector, challenge_aggregator, cache=ScoreCache(clock=lambda: now["t"])
    )

    for offset in range(10):
        ranker.rank(GLOBAL, crew["alice"].id, AS_OF - timedelta(days=offset))
        now["t"] += 60

    assert len(ranker.cache) == 1


class _MovingLedger:
    """Reports a moving high-water mark for the first ``moves`` reads."""

    def __init__(self, moves: int) -> None:
        self.reads = 0
        self.moves = moves

    def high_water_mark(self) -> int:
        self.reads += 1
        return self.reads if self.reads <= self.moves * 2 else 0


class _CountingProjector:
    def __init__(self) -> None:
        self.calls = 0

    def completed_day_counts(self, habits, start, end):
        self.calls += 1
        return habit_projector.completed_day_counts(habits, start, end)


def test_stale_snapshot_is_retried_transparently(crew):
    projector = _CountingProjector()
    ranker = LeaderboardRanker(_MovingLedger(moves=1), projector, challenge_aggregator)

    entries = ranker.rank(GLOBAL, crew["alice"].id, AS_OF)

    assert projector.calls == 2
    assert _names(entries)[0] == (1, "alice", 3)


def test_persistent_staleness_serves_last_attempt(app, crew):
    app.config["LEADERBOARD_MAX_RETRIES"] = 3
    projector = _CountingProjector()
    ranker = LeaderboardRanker(_MovingLedger(moves=100), projector, challenge_aggregator)

    entries = ranker.rank(GLOBAL, crew["alice"].id, AS_OF)

    assert projector.calls == 3
    assert len(entries) == 4


def test_page_reports_viewer_rank_outside_window(crew):
    page = leaderboard_ranker.page(GLOBAL, crew["dave"].id, AS_OF, limit=2, offset=0)

    assert page.total == 4
    assert [e.display_name for e in page.entries] == ["alice", "carol"]
    assert page.my_rank == 4
    assert page.my_score == 0
