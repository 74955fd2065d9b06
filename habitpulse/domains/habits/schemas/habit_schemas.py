"""Habit request and response DTOs."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=4096)
    kind: Literal["simple", "counter"] = "simple"
    target_count: Optional[int] = Field(default=None, ge=1)
    schedule_days: Optional[List[int]] = None
    timezone: Optional[str] = Field(default=None, max_length=64)
    overflow_policy: Optional[Literal["clamp", "reset", "reject"]] = None

    @field_validator("schedule_days")
    @classmethod
    def _weekdays(cls, value):
        if value is None:
            return value
        if not value or any(day < 0 or day > 6 for day in value):
            raise ValueError("schedule_days must hold weekday numbers 0-6")
        return sorted(set(value))


class CompletionCreate(BaseModel):
    delta: Literal[1, -1] = 1
    client_timestamp: Optional[datetime] = None


class HabitDayStateResponse(BaseModel):
    habit_id: int
    day: date
    current_count: int
    target: int
    is_complete: bool
    event_count: int


class HabitSummaryResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    kind: str
    target_count: int
    schedule_days: List[int]
    timezone: str
    is_deleted: bool
    current_streak: int
    today: HabitDayStateResponse


def serialize_state(state) -> dict:
    return HabitDayStateResponse(
        habit_id=state.habit_id,
        day=state.day,
        current_count=state.current_count,
        target=state.target,
        is_complete=state.is_complete,
        event_count=state.event_count,
    ).model_dump(mode="json")
