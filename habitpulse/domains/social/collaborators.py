"""Outbound lookups the ranker depends on.

The defaults read this service's own tables. An app can swap any of them by
placing a ``Collaborators`` under ``app.extensions["habitpulse.collaborators"]``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Set

from flask import current_app, has_app_context

from habitpulse.core.users.services import organization_of
from habitpulse.domains.challenges.aggregator import ChallengeParticipant
from habitpulse.domains.challenges.services import challenge_membership
from habitpulse.domains.social.services import friend_edges

EXTENSION_KEY = "habitpulse.collaborators"


@dataclass(frozen=True)
class Collaborators:
    friend_edges: Callable[[int], Set[int]] = friend_edges
    organization_of: Callable[[int], Optional[int]] = organization_of
    challenge_membership: Callable[[int], Set[ChallengeParticipant]] = challenge_membership


def get_collaborators() -> Collaborators:
    if has_app_context():
        found = current_app.extensions.get(EXTENSION_KEY)
        if found is not None:
            return found
    return Collaborators()
