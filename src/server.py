"""Background worker for the notifications service.

Runs the scheduler sweep on an interval: releases scheduled and
quiet-hours-deferred notifications and retries failed deliveries whose
backoff has elapsed.

Usage:
    python src/server.py                 # Sweep every NOTIFICATIONS_SCHEDULER_INTERVAL_SECONDS
    python src/server.py --interval 15   # Sweep every 15 seconds
    python src/server.py --once          # Run a single sweep and exit
"""

import argparse
import signal
import threading

import structlog
from notifications.bootstrap import build_orchestrator
from notifications.config import get_settings
from notifications.domain import notifications
from notifications.utils.logging import add_context, configure_logging

logger = structlog.get_logger(__name__)


def run(interval: int, once: bool = False) -> None:
    orchestrator = build_orchestrator()
    stop = threading.Event()

    def _shutdown(signum, frame):
        logger.info("Stopping scheduler worker", signal=signum)
        stop.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop.is_set():
            with notifications.domain_context():
                try:
                    orchestrator.process_scheduled()
                except Exception as exc:
                    logger.error("Scheduler sweep failed", error=str(exc))
            if once:
                break
            stop.wait(interval)
    finally:
        orchestrator.close()


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Notifications scheduler worker")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.scheduler_interval_seconds,
        help="Seconds between sweeps (default: NOTIFICATIONS_SCHEDULER_INTERVAL_SECONDS)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single sweep and exit")
    args = parser.parse_args()

    configure_logging(instance_id=settings.instance_id)
    add_context(worker="scheduler")
    notifications.init()
    logger.info("Scheduler worker started", interval=args.interval)

    run(args.interval, once=args.once)


if __name__ == "__main__":
    main()
