"""Standalone outbox worker: ``python -m habitpulse.platform.worker.run``.

SIGTERM stops the loop between batches so a claimed batch is always committed.
"""

from __future__ import annotations

import logging
import os
import signal
import threading

from habitpulse import create_app
from habitpulse.platform.worker.config import DispatchConfig
from habitpulse.platform.worker.dispatcher import run_dispatcher

logger = logging.getLogger("habitpulse.worker")


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("WORKER_LOGLEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(os.environ.get("APP_ENV", "development"))
    stop = threading.Event()

    def _terminate(signum, _frame):
        logger.info("Signal %s received; finishing current batch", signum)
        stop.set()

    signal.signal(signal.SIGTERM, _terminate)
    with app.app_context():
        run_dispatcher(DispatchConfig.from_app_config(app.config), stop=stop)


if __name__ == "__main__":
    main()
