"""Transactional outbox: events staged in the same commit as the ledger row."""

from habitpulse.platform.outbox.models import OutboxMessage
from habitpulse.platform.outbox.services import EventBusAdapter, enqueue, status_counts

__all__ = ["EventBusAdapter", "OutboxMessage", "enqueue", "status_counts"]
