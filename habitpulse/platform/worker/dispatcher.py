"""Outbox dispatcher: claim ready rows, deliver them, record the outcome.

Completion events reach the coaching subscriber only through here, so a slow
or failing coach delays a message, never a completion.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from habitpulse.extensions import db
from habitpulse.platform.outbox.models import (
    DELIVERABLE,
    STATUS_FAILED,
    STATUS_RETRY,
    STATUS_SENDING,
    STATUS_SENT,
    OutboxMessage,
)
from habitpulse.platform.outbox.services import EventBusAdapter
from habitpulse.platform.worker.config import DispatchConfig

logger = logging.getLogger(__name__)

SendFn = Callable[[OutboxMessage], None]


def _compute_backoff_seconds(attempts: int, config: DispatchConfig) -> float:
    """Delay before retry number ``attempts`` (1-based), growing geometrically."""
    return config.backoff_seconds * config.backoff_multiplier ** max(attempts - 1, 0)


def claim_ready_messages(session, batch_size: int, now: Optional[datetime] = None) -> List[OutboxMessage]:
    """Reserve up to ``batch_size`` due rows, oldest first.

    Rows locked by another worker are skipped. Claimed rows move to
    ``sending`` and count one more attempt before anything is delivered.
    """
    due = now or datetime.utcnow()
    claimed = (
        session.query(OutboxMessage)
        .filter(
            OutboxMessage.status.in_(DELIVERABLE),
            OutboxMessage.available_at <= due,
        )
        .order_by(OutboxMessage.available_at, OutboxMessage.id)
        .with_for_update(skip_locked=True)
        .limit(batch_size)
        .all()
    )
    for message in claimed:
        message.status = STATUS_SENDING
        message.attempts = (message.attempts or 0) + 1
    return claimed


def _schedule_retry(message: OutboxMessage, exc: Exception, config: DispatchConfig) -> str:
    attempts = message.attempts or 1
    retry_at = datetime.utcnow() + timedelta(seconds=_compute_backoff_seconds(attempts, config))
    message.last_error = str(exc)
    message.available_at = max(message.available_at or retry_at, retry_at)
    message.status = STATUS_FAILED if attempts >= config.max_attempts else STATUS_RETRY
    return message.status


def _deliver(message: OutboxMessage, send_fn: SendFn, config: DispatchConfig) -> str:
    try:
        send_fn(message)
    except Exception as exc:
        outcome = _schedule_retry(message, exc, config)
        log = logger.error if outcome == STATUS_FAILED else logger.warning
        log(
            "Outbox %s #%s attempt %s/%s failed: %s",
            message.event_type,
            message.id,
            message.attempts,
            config.max_attempts,
            exc,
        )
        return outcome
    message.status = STATUS_SENT
    message.last_error = None
    return STATUS_SENT


def process_ready_batch(send_fn: SendFn, config: DispatchConfig, session=None) -> int:
    """Deliver one batch and commit the outcomes. Returns how many rows were handled."""
    session = session or db.session
    try:
        claimed = claim_ready_messages(session, batch_size=config.batch_size)
        outcomes = Counter(_deliver(message, send_fn, config) for message in claimed)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Outbox batch aborted by a database error")
        return 0
    handled = sum(outcomes.values())
    if handled:
        logger.info(
            "Outbox batch: sent=%s retry=%s failed=%s",
            outcomes[STATUS_SENT],
            outcomes[STATUS_RETRY],
            outcomes[STATUS_FAILED],
        )
    return handled


def dispatch_ready(config: Optional[DispatchConfig] = None, adapter: Optional[EventBusAdapter] = None) -> int:
    """One pass over due messages, published to the in-process bus."""
    return process_ready_batch((adapter or EventBusAdapter()).dispatch, config or DispatchConfig())


def run_dispatcher(
    config: Optional[DispatchConfig] = None,
    send_fn: Optional[SendFn] = None,
    stop: Optional[threading.Event] = None,
) -> None:
    """Poll until interrupted or ``stop`` is set; drains back-to-back while busy."""
    cfg = config or DispatchConfig.from_env()
    deliver = send_fn or EventBusAdapter().dispatch
    stop = stop or threading.Event()
    logger.info(
        "Outbox dispatcher up: batch=%s poll=%ss attempts=%s backoff=%ss x%s",
        cfg.batch_size,
        cfg.poll_interval,
        cfg.max_attempts,
        cfg.backoff_seconds,
        cfg.backoff_multiplier,
    )
    try:
        while not stop.is_set():
            if process_ready_batch(deliver, cfg) == 0:
                stop.wait(cfg.poll_interval)
    except KeyboardInterrupt:
        logger.info("Outbox dispatcher interrupted")
    logger.info("Outbox dispatcher stopped")
