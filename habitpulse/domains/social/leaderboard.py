"""Ranked, privacy-filtered leaderboard views.

Scores are a function of the ledger and may be cached briefly per scope and
candidate set. Privacy is resolved on every call, after the cache, so a
changed setting takes effect on the next request.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, FrozenSet, Hashable, List, Optional, Tuple

from flask import current_app

from habitpulse.core.errors import StaleSnapshot, ValidationError
from habitpulse.core.users.models import User
from habitpulse.core.utils.dates import period_start
from habitpulse.domains.challenges.models.challenge_models import Challenge
from habitpulse.domains.challenges.services import challenge_aggregator
from habitpulse.domains.habits.ledger import completion_ledger, habit_projector
from habitpulse.domains.habits.models.habit_models import Habit
from habitpulse.domains.social.collaborators import Collaborators, get_collaborators
from habitpulse.domains.social.privacy import PrivacyPolicy, ScopeClass, Visibility
from habitpulse.extensions import db

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"


class ScopeKind(str, Enum):
    GLOBAL = "global"
    ORGANIZATION = "organization"
    FRIENDS = "friends"
    CHALLENGE = "challenge"


@dataclass(frozen=True)
class Scope:
    kind: ScopeKind
    ref_id: Optional[int] = None

    @classmethod
    def parse(cls, kind: str, ref_id: Optional[int] = None) -> "Scope":
        try:
            scope_kind = ScopeKind(kind)
        except ValueError:
            raise ValidationError("invalid_scope", kind) from None
        if scope_kind == ScopeKind.CHALLENGE and ref_id is None:
            raise ValidationError("validation_error", "ref_id")
        return cls(scope_kind, ref_id)

    def label(self) -> str:
        return self.kind.value if self.ref_id is None else f"{self.kind.value}:{self.ref_id}"


@dataclass(frozen=True)
class LeaderboardEntry:
    scope: str
    user_id: Optional[int]
    display_name: str
    score: float
    rank: int
    is_current_user: bool = False

    def to_dict(self) -> dict:
        return {
            "scope": self.scope,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "score": self.score,
            "rank": self.rank,
            "is_current_user": self.is_current_user,
        }


@dataclass
class LeaderboardPage:
    entries: List[LeaderboardEntry]
    total: int
    limit: int
    offset: int
    my_rank: Optional[int] = None
    my_score: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "my_rank": self.my_rank,
            "my_score": self.my_score,
        }


@dataclass(frozen=True)
class _Candidate:
    user_id: int
    display_name: str
    tiebreak: datetime
    forced_hidden: bool = False


@dataclass
class _Board:
    scope_class: ScopeClass
    candidates: List[_Candidate] = field(default_factory=list)
    score_fn: Optional[Callable[[], Dict[int, float]]] = None


class ScoreCache:
    """TTL memo of score maps. Holds scores only, never visibility."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Tuple[float, Dict[int, float]]] = {}

    def get(self, key: Hashable, ttl: float) -> Optional[Dict[int, float]]:
        if ttl <= 0:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, scores = entry
            if self._clock() - stored_at > ttl:
                self._entries.pop(key, None)
                return None
            return scores

    def put(self, key: Hashable, scores: Dict[int, float], ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            now = self._clock()
            # Keys carry the day and candidate set, so stale ones are rarely read again.
            expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at > ttl]
            for stale in expired:
                del self._entries[stale]
            self._entries[key] = (now, scores)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LeaderboardRanker:
    def __init__(
        self,
        ledger,
        projector,
        aggregator,
        collaborators: Optional[Collaborators] = None,
        cache: Optional[ScoreCache] = None,
    ) -> None:
        self.ledger = ledger
        self.projector = projector
        self.aggregator = aggregator
        self._collaborators = collaborators
        self.cache = cache or ScoreCache()

    @property
    def collaborators(self) -> Collaborators:
        return self._collaborators or get_collaborators()

    # -- public ----------------------------------------------------------

    def rank(
        self, scope: Scope, viewer_id: int, as_of: date, period: str = "all_time"
    ) -> List[LeaderboardEntry]:
        since = period_start(as_of, period)
        board = self._board(scope, viewer_id, as_of, since)
        candidate_ids = frozenset(c.user_id for c in board.candidates)
        scores = self._scores(scope, as_of, period, candidate_ids, board.score_fn)

        ordered = sorted(
            board.candidates,
            key=lambda c: (-scores.get(c.user_id, 0), c.tiebreak, c.user_id),
        )
        policy = PrivacyPolicy(self.collaborators.friend_edges)
        visibility = policy.visibility_map(
            viewer_id,
            [c.user_id for c in ordered],
            board.scope_class,
            forced_hidden=[c.user_id for c in ordered if c.forced_hidden],
        )

        entries: List[LeaderboardEntry] = []
        label = scope.label()
        for candidate in ordered:
            seen = visibility[candidate.user_id]
            if seen == Visibility.HIDDEN:
                continue
            masked = seen == Visibility.ANONYMOUS_SCORE
            entries.append(
                LeaderboardEntry(
                    scope=label,
                    user_id=None if masked else candidate.user_id,
                    display_name=ANONYMOUS_NAME if masked else candidate.display_name,
                    score=scores.get(candidate.user_id, 0),
                    rank=len(entries) + 1,
                    is_current_user=candidate.user_id == viewer_id,
                )
            )
        return entries

    def page(
        self,
        scope: Scope,
        viewer_id: int,
        as_of: date,
        period: str = "all_time",
        limit: int = 50,
        offset: int = 0,
    ) -> LeaderboardPage:
        entries = self.rank(scope, viewer_id, as_of, period)
        mine = next((entry for entry in entries if entry.is_current_user), None)
        return LeaderboardPage(
            entries=entries[offset : offset + limit],
            total=len(entries),
            limit=limit,
            offset=offset,
            my_rank=mine.rank if mine else None,
            my_score=mine.score if mine else None,
        )

    # -- candidates ------------------------------------------------------

    def _board(self, scope: Scope, viewer_id: int, as_of: date, since: Optional[date]) -> _Board:
        if scope.kind == ScopeKind.CHALLENGE:
            return self._challenge_board(scope.ref_id, as_of, since)

        if scope.kind == ScopeKind.GLOBAL:
            scope_class = ScopeClass.GLOBAL
            users = User.query.filter(User.is_active.is_(True)).all()
        elif scope.kind == ScopeKind.ORGANIZATION:
            scope_class = ScopeClass.ORGANIZATION
            org_id = self.collaborators.organization_of(viewer_id)
            # Only the viewer's own organization; other ids look nonexistent.
            if org_id is None or scope.ref_id not in (None, org_id):
                raise ValidationError("not_found", "organization")
            users = User.query.filter(
                User.organization_id == org_id, User.is_active.is_(True)
            ).all()
        else:
            scope_class = ScopeClass.FRIENDS
            edges = self.collaborators.friend_edges
            ids = {other for other in edges(viewer_id) if viewer_id in edges(other)}
            ids.add(viewer_id)
            users = User.query.filter(User.id.in_(list(ids))).all()

        candidates = [_Candidate(u.id, u.display_name, u.created_at) for u in users]
        ids = [c.user_id for c in candidates]
        return _Board(
            scope_class=scope_class,
            candidates=candidates,
            score_fn=lambda: self._completion_scores(ids, as_of, since),
        )

    def _challenge_board(self, challenge_id: int, as_of: date, since: Optional[date]) -> _Board:
        challenge = db.session.get(Challenge, challenge_id)
        if not challenge:
            raise ValidationError("not_found", "challenge")
        participants = self.collaborators.challenge_membership(challenge.id)
        users = {
            u.id: u
            for u in User.query.filter(User.id.in_([p.user_id for p in participants])).all()
        }
        candidates = [
            _Candidate(
                p.user_id,
                users[p.user_id].display_name if p.user_id in users else f"User {p.user_id}",
                p.joined_at,
                p.opt_out_of_leaderboard,
            )
            for p in participants
        ]
        ids = [c.user_id for c in candidates]

        def score_fn() -> Dict[int, float]:
            progress = self.aggregator.progress_many(challenge, ids, as_of, since=since)
            return {user_id: item.score for user_id, item in progress.items()}

        scope_class = ScopeClass.ORGANIZATION if challenge.organization_id else ScopeClass.GLOBAL
        return _Board(scope_class=scope_class, candidates=candidates, score_fn=score_fn)

    # -- scores ----------------------------------------------------------

    def _completion_scores(self, user_ids: List[int], as_of: date, since: Optional[date]) -> Dict[int, float]:
        """Completed habit-days per user, deleted habits included."""
        if not user_ids:
            return {}
        habits = Habit.query.filter(Habit.user_id.in_(user_ids)).all()
        counts = self.projector.completed_day_counts(habits, since, as_of)
        return {user_id: counts.get(user_id, 0) for user_id in user_ids}

    def _scores(
        self,
        scope: Scope,
        as_of: date,
        period: str,
        candidate_ids: FrozenSet[int],
        score_fn: Callable[[], Dict[int, float]],
    ) -> Dict[int, float]:
        ttl = float(current_app.config.get("LEADERBOARD_CACHE_SECONDS", 0) or 0)
        key = (scope.kind.value, scope.ref_id, as_of, period, candidate_ids)
        cached = self.cache.get(key, ttl)
        if cached is not None:
            return cached
        scores = self._consistent(score_fn)
        self.cache.put(key, scores, ttl)
        return scores

    def _snapshot(self, score_fn: Callable[[], Dict[int, float]]) -> Dict[int, float]:
        before = self.ledger.high_water_mark()
        scores = score_fn()
        after = self.ledger.high_water_mark()
        if after != before:
            raise StaleSnapshot("stale_snapshot", f"{before}->{after}")
        return scores

    def _consistent(self, score_fn: Callable[[], Dict[int, float]]) -> Dict[int, float]:
        attempts = max(1, int(current_app.config.get("LEADERBOARD_MAX_RETRIES", 3)))
        for attempt in range(1, attempts):
            try:
                return self._snapshot(score_fn)
            except StaleSnapshot as exc:
                logger.info("Leaderboard read raced the ledger (%s), attempt %s/%s", exc.detail, attempt, attempts)
        # Final attempt is served as-is; a lag of one cycle is acceptable.
        return score_fn()


leaderboard_ranker = LeaderboardRanker(completion_ledger, habit_projector, challenge_aggregator)
