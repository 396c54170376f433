"""Hourly scheduler enqueueing "event about to end" notifications."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import worker_runtime
from src.config.logging_config import get_logger
from src.config.settings import get_settings
from src.use_cases.notification_factories import (
    create_expiration_notifier,
    create_notification_components,
)

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the expiring-event notifier")
    parser.add_argument(
        "--interval-seconds",
        type=float,
        default=3600.0,
        help="Interval between checks",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single check and exit",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit logs in JSON format",
    )
    args = parser.parse_args(argv)
    if args.interval_seconds <= 0:
        parser.error("--interval-seconds must be greater than 0")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    worker_runtime.initialize_logging(settings, json_logs=args.json_logs)

    controller = worker_runtime.create_shutdown_controller()
    worker_runtime.install_signal_handlers(controller)

    components = create_notification_components(settings)
    notify = create_expiration_notifier(components, settings)

    worker_runtime.run_scheduler_loop(
        controller=controller,
        interval_seconds=args.interval_seconds,
        run_once=args.run_once,
        action=notify,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
