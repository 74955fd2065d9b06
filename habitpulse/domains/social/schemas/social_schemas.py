"""Social DTOs: privacy settings and leaderboard query params."""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field


class PrivacyUpdate(BaseModel):
    scope_class: Literal["global", "organization", "friends"]
    visibility: Literal["public", "anonymous_score", "hidden"]


class LeaderboardQuery(BaseModel):
    scope: Literal["global", "organization", "friends", "challenge"] = "global"
    ref_id: Optional[int] = None
    period: Literal["daily", "weekly", "monthly", "all_time"] = "all_time"
    as_of: Optional[date] = None
    limit: Optional[int] = Field(default=None, ge=1, le=500)
    offset: int = Field(default=0, ge=0)
