"""In-process publish/subscribe for events released by the outbox dispatcher.

Event types read ``<domain>.<entity>.<action>``, e.g. ``habits.completion.recorded``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, DefaultDict, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class BusEvent:
    event_type: str
    payload: Dict[str, Any] = field(default_factory=dict)
    user_id: Optional[int] = None
    # Outbox row id; stable across redeliveries.
    id: Optional[int] = None
    created_at: Optional[datetime] = None


EventHandler = Callable[[BusEvent], None]


class EventBus:
    def __init__(self) -> None:
        self._handlers: DefaultDict[str, List[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register ``handler``; subscribing the same handler twice is a no-op."""
        if handler not in self._handlers[event_type]:
            self._handlers[event_type].append(handler)

    def handlers_for(self, event_type: str) -> List[EventHandler]:
        return list(self._handlers.get(event_type, ()))

    def publish(self, event: BusEvent) -> int:
        """Call every handler in subscription order and return how many ran.

        A handler error stops the fan-out and propagates, leaving the outbox row
        to be retried as a whole.
        """
        handlers = self.handlers_for(event.event_type)
        if not handlers:
            logger.debug("No subscribers for %s #%s", event.event_type, event.id)
        for handler in handlers:
            handler(event)
        return len(handlers)


event_bus = EventBus()
