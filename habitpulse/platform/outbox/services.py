"""Outbox staging and the bus adapter used by the dispatcher."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Set

from sqlalchemy import func

from habitpulse.core.events.event_bus import BusEvent, event_bus
from habitpulse.extensions import db
from habitpulse.platform.outbox.models import STATUS_PENDING, OutboxMessage


class EventBusAdapter:
    """Publishes outbox rows on an in-process bus, at most once per adapter instance.

    Handlers still see redeliveries across worker restarts and dedupe on
    ``payload["external_id"]``.
    """

    def __init__(self, bus=None) -> None:
        self.bus = bus or event_bus
        self._delivered: Set[int] = set()

    def dispatch(self, message: OutboxMessage) -> None:
        if message.id in self._delivered:
            return
        payload = dict(message.payload or {})
        payload.setdefault("external_id", message.external_id)
        payload.setdefault("event_id", message.id)
        self.bus.publish(
            BusEvent(
                event_type=message.event_type,
                payload=payload,
                user_id=message.user_id,
                id=message.id,
                created_at=message.created_at,
            )
        )
        self._delivered.add(message.id)


def enqueue(
    event_name: str,
    payload: dict,
    user_id: Optional[int],
    available_at: Optional[datetime] = None,
) -> OutboxMessage:
    """
    Stage an event in the outbox. Caller commits alongside domain changes.
    """
    message = OutboxMessage(
        event_type=event_name,
        payload=payload or {},
        user_id=user_id,
        available_at=available_at or datetime.utcnow(),
        status=STATUS_PENDING,
        attempts=0,
    )
    db.session.add(message)
    return message


def status_counts() -> Dict[str, int]:
    rows = (
        db.session.query(OutboxMessage.status, func.count(OutboxMessage.id))
        .group_by(OutboxMessage.status)
        .all()
    )
    return {status: int(count) for status, count in rows}
