"""Entry point for the notification delivery worker.

Drains the notification job queue on a fixed cadence (every minute by
default) until SIGTERM/SIGINT.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import worker_runtime
from src.config.logging_config import get_logger
from src.config.settings import get_settings
from src.observability.metrics import ensure_metrics_exporter
from src.use_cases.notification_factories import (
    create_delivery_worker,
    create_notification_components,
)

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the notification delivery worker")
    parser.add_argument(
        "--interval-seconds",
        type=float,
        default=None,
        help="Seconds between drain cycles (defaults to drain_interval_seconds)",
    )
    parser.add_argument(
        "--worker-id",
        default=None,
        help="Lease owner identifier (defaults to hostname plus a random suffix)",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single drain cycle and exit",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Start the Prometheus exporter on metrics_port",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit logs in JSON format",
    )
    args = parser.parse_args(argv)
    if args.interval_seconds is not None and args.interval_seconds <= 0:
        parser.error("--interval-seconds must be greater than 0")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    worker_runtime.initialize_logging(settings, json_logs=args.json_logs)
    if args.metrics:
        ensure_metrics_exporter(settings.metrics_port)

    controller = worker_runtime.create_shutdown_controller()
    worker_runtime.install_signal_handlers(controller)

    components = create_notification_components(settings)
    worker = create_delivery_worker(components, settings, worker_id=args.worker_id)
    logger.info("delivery_worker_starting", worker_id=worker.worker_id)

    worker_runtime.run_scheduler_loop(
        controller=controller,
        interval_seconds=args.interval_seconds or settings.drain_interval_seconds,
        run_once=args.run_once,
        action=worker.process_available_jobs,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
