"""Bus subscribers forwarding completions to the coaching service."""

from __future__ import annotations

import logging
from typing import Optional

from flask import current_app

from habitpulse.core.coaching.client import CoachClient
from habitpulse.core.events.event_bus import BusEvent, EventBus, event_bus
from habitpulse.domains.habits.events import HABITS_COMPLETION_RECORDED

logger = logging.getLogger(__name__)


def build_context(event: BusEvent) -> dict:
    payload = event.payload or {}
    return {
        "event_id": payload.get("event_id", event.id),
        "user_id": payload.get("user_id", event.user_id),
        "habit_id": payload.get("habit_id"),
        "habit_name": payload.get("habit_name"),
        "local_day": payload.get("local_day"),
        "current_count": payload.get("current_count"),
        "target": payload.get("target"),
        "is_complete": payload.get("is_complete"),
    }


def coach_client_from_config(config) -> Optional[CoachClient]:
    url = config.get("COACH_API_URL")
    if not url:
        return None
    return CoachClient(
        url,
        api_key=config.get("COACH_API_KEY") or None,
        timeout=float(config.get("COACH_TIMEOUT_SECONDS", 10)),
    )


def on_completion_recorded(event: BusEvent) -> None:
    client = current_app.extensions.get("habitpulse.coach_client")
    if client is None:
        client = coach_client_from_config(current_app.config)
    if client is None:
        logger.debug("Coaching disabled; skipping event %s", event.id)
        return
    client.send_completion(build_context(event))


def register_subscriptions(bus: Optional[EventBus] = None) -> None:
    (bus or event_bus).subscribe(HABITS_COMPLETION_RECORDED, on_completion_recorded)
