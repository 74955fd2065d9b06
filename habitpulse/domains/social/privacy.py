"""Leaderboard privacy resolution.

``resolve_visibility`` is pure: callers hand it the subject's settings and a
friend-edge lookup. Settings are loaded fresh for each leaderboard request.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional, Set

from habitpulse.domains.social.models.social_models import PrivacySetting


class Visibility(str, Enum):
    PUBLIC = "public"
    ANONYMOUS_SCORE = "anonymous_score"
    HIDDEN = "hidden"


class ScopeClass(str, Enum):
    GLOBAL = "global"
    ORGANIZATION = "organization"
    FRIENDS = "friends"


def is_mutual(a: int, b: int, friend_edges: Callable[[int], Set[int]]) -> bool:
    return b in friend_edges(a) and a in friend_edges(b)


def resolve_visibility(
    viewer_id: int,
    subject_id: int,
    scope_class: ScopeClass,
    settings: Mapping[ScopeClass, Visibility],
    friend_edges: Callable[[int], Set[int]],
) -> Visibility:
    """How ``subject_id`` appears to ``viewer_id`` on a board of ``scope_class``.

    ``settings`` holds the subject's stored visibility per scope class.
    """
    if viewer_id == subject_id:
        return Visibility.PUBLIC
    chosen = settings.get(scope_class, Visibility.PUBLIC)
    if chosen == Visibility.HIDDEN:
        return Visibility.HIDDEN
    if scope_class == ScopeClass.FRIENDS and not is_mutual(viewer_id, subject_id, friend_edges):
        return Visibility.HIDDEN
    if chosen == Visibility.ANONYMOUS_SCORE:
        return Visibility.ANONYMOUS_SCORE
    return Visibility.PUBLIC


def load_settings(
    user_ids: Iterable[int], scope_class: Optional[ScopeClass] = None
) -> Dict[int, Dict[ScopeClass, Visibility]]:
    ids = list(user_ids)
    if not ids:
        return {}
    query = PrivacySetting.query.filter(PrivacySetting.user_id.in_(ids))
    if scope_class is not None:
        query = query.filter(PrivacySetting.scope_class == scope_class.value)
    settings: Dict[int, Dict[ScopeClass, Visibility]] = {}
    for row in query.all():
        settings.setdefault(row.user_id, {})[ScopeClass(row.scope_class)] = Visibility(row.visibility)
    return settings


class PrivacyPolicy:
    def __init__(self, friend_edges: Callable[[int], Set[int]]) -> None:
        self.friend_edges = friend_edges

    def visibility_map(
        self,
        viewer_id: int,
        subject_ids: Iterable[int],
        scope_class: ScopeClass,
        forced_hidden: Iterable[int] = (),
    ) -> Dict[int, Visibility]:
        """Resolve every subject at once; ``forced_hidden`` covers challenge opt-outs."""
        ids = list(subject_ids)
        settings = load_settings(ids, scope_class)
        forced = set(forced_hidden)
        edges: Dict[int, Set[int]] = {}

        def cached_edges(user_id: int) -> Set[int]:
            if user_id not in edges:
                edges[user_id] = set(self.friend_edges(user_id))
            return edges[user_id]

        result = {}
        for subject_id in ids:
            if subject_id in forced and subject_id != viewer_id:
                result[subject_id] = Visibility.HIDDEN
                continue
            result[subject_id] = resolve_visibility(
                viewer_id, subject_id, scope_class, settings.get(subject_id, {}), cached_edges
            )
        return result
