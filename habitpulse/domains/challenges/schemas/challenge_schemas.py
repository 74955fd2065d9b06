"""Challenge DTOs."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class ChallengeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=4096)
    organization_id: Optional[int] = None
    start_day: Optional[date] = None
    end_day: Optional[date] = None
    partial_credit: bool = False

    @model_validator(mode="after")
    def _window(self):
        if self.start_day and self.end_day and self.end_day < self.start_day:
            raise ValueError("end_day must not precede start_day")
        return self


class ChallengeListQuery(BaseModel):
    status: Optional[Literal["active", "upcoming", "ended"]] = None
    organization_id: Optional[int] = None
    mine: bool = False
    q: Optional[str] = Field(default=None, max_length=255)
    as_of: Optional[date] = None
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class ChallengeHabitCreate(BaseModel):
    habit_id: int
    weight: float = Field(default=1.0, gt=0)


class MembershipUpdate(BaseModel):
    opt_out_of_leaderboard: bool


class ChallengeResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    creator_id: int
    organization_id: Optional[int]
    start_day: date
    end_day: Optional[date]
    partial_credit: bool
    participant_count: int = 0
    habit_count: int = 0


class MembershipResponse(BaseModel):
    challenge_id: int
    user_id: int
    joined_at: datetime
    joined_day: date
    left_day: Optional[date]
    opt_out_of_leaderboard: bool


def serialize_challenge(challenge, participant_count: int = 0, habit_count: int = 0) -> dict:
    return ChallengeResponse(
        id=challenge.id,
        title=challenge.title,
        description=challenge.description,
        creator_id=challenge.creator_id,
        organization_id=challenge.organization_id,
        start_day=challenge.start_day,
        end_day=challenge.end_day,
        partial_credit=challenge.partial_credit,
        participant_count=participant_count,
        habit_count=habit_count,
    ).model_dump(mode="json")


def serialize_membership(membership) -> dict:
    return MembershipResponse(
        challenge_id=membership.challenge_id,
        user_id=membership.user_id,
        joined_at=membership.joined_at,
        joined_day=membership.joined_day,
        left_day=membership.left_day,
        opt_out_of_leaderboard=membership.opt_out_of_leaderboard,
    ).model_dump(mode="json")
