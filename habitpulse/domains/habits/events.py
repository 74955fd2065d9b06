"""Habits domain event catalog."""

from __future__ import annotations

HABITS_HABIT_CREATED = "habits.habit.created"
HABITS_HABIT_DELETED = "habits.habit.deleted"
HABITS_COMPLETION_RECORDED = "habits.completion.recorded"

EVENT_CATALOG = {
    HABITS_HABIT_CREATED: {
        "version": "v1",
        "payload": {
            "habit_id": "int",
            "user_id": "int",
            "name": "str",
            "kind": "str",
            "target_count": "int",
            "schedule_days": "list[int]",
            "timezone": "str",
            "created_at": "datetime",
        },
    },
    HABITS_HABIT_DELETED: {
        "version": "v1",
        "payload": {
            "habit_id": "int",
            "user_id": "int",
            "deleted_at": "datetime",
        },
    },
    HABITS_COMPLETION_RECORDED: {
        "version": "v1",
        "payload": {
            "event_id": "int",
            "habit_id": "int",
            "habit_name": "str",
            "user_id": "int",
            "local_day": "date",
            "kind": "str",
            "current_count": "int",
            "target": "int",
            "is_complete": "bool",
        },
    },
}

__all__ = [
    "EVENT_CATALOG",
    "HABITS_HABIT_CREATED",
    "HABITS_HABIT_DELETED",
    "HABITS_COMPLETION_RECORDED",
]
