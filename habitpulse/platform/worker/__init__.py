"""Outbox dispatcher; run it with ``flask dispatch-outbox --loop`` or ``worker.run``."""

from habitpulse.platform.worker.config import DispatchConfig
from habitpulse.platform.worker.dispatcher import dispatch_ready, process_ready_batch, run_dispatcher

__all__ = ["DispatchConfig", "dispatch_ready", "process_ready_batch", "run_dispatcher"]
