"""Challenges domain event catalog."""

from __future__ import annotations

CHALLENGES_CHALLENGE_CREATED = "challenges.challenge.created"
CHALLENGES_MEMBER_JOINED = "challenges.member.joined"
CHALLENGES_MEMBER_LEFT = "challenges.member.left"

EVENT_CATALOG = {
    CHALLENGES_CHALLENGE_CREATED: {
        "version": "v1",
        "payload": {
            "challenge_id": "int",
            "creator_id": "int",
            "organization_id": "int|None",
            "start_day": "date",
            "end_day": "date|None",
        },
    },
    CHALLENGES_MEMBER_JOINED: {
        "version": "v1",
        "payload": {"challenge_id": "int", "user_id": "int", "joined_day": "date"},
    },
    CHALLENGES_MEMBER_LEFT: {
        "version": "v1",
        "payload": {"challenge_id": "int", "user_id": "int", "left_day": "date"},
    },
}

__all__ = [
    "EVENT_CATALOG",
    "CHALLENGES_CHALLENGE_CREATED",
    "CHALLENGES_MEMBER_JOINED",
    "CHALLENGES_MEMBER_LEFT",
]
