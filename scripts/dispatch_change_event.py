"""Dispatch one document change event to the notification triggers.

Bridges an external database trigger into the pipeline. The change is read
as JSON from a file argument or stdin:

    {"collection": "likes", "document_id": "...", "before": {...}, "after": {...}}
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import ValidationError as PydanticValidationError

from scripts import worker_runtime
from src.config.logging_config import get_logger
from src.config.settings import get_settings
from src.domain.models import ChangeEvent
from src.use_cases.notification_factories import (
    create_change_feed_dispatcher,
    create_delivery_worker,
    create_job_runner,
    create_notification_components,
)

logger = get_logger(__name__)

DRAIN_WAIT_TIMEOUT_SECONDS = 60.0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dispatch a change event")
    parser.add_argument(
        "path",
        nargs="?",
        default="-",
        help="JSON file with the change event ('-' for stdin)",
    )
    parser.add_argument(
        "--no-drain",
        dest="drain",
        action="store_false",
        help="Do not drain the queue when the change creates a notification job",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit logs in JSON format",
    )
    return parser.parse_args(argv)


def read_change(path: str) -> ChangeEvent:
    raw = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    return ChangeEvent.model_validate(json.loads(raw))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    worker_runtime.initialize_logging(settings, json_logs=args.json_logs)

    try:
        change = read_change(args.path)
    except (OSError, json.JSONDecodeError, PydanticValidationError) as exc:
        logger.error("change_event_unreadable", path=args.path, error=str(exc))
        return 2

    components = create_notification_components(settings)
    runner = None
    if args.drain:
        runner = create_job_runner(create_delivery_worker(components, settings))
    dispatcher = create_change_feed_dispatcher(components, runner=runner)

    handled = dispatcher.dispatch(change)
    if runner is not None:
        runner.wait_all(DRAIN_WAIT_TIMEOUT_SECONDS)

    logger.info(
        "change_event_dispatched",
        collection=change.collection,
        document_id=change.document_id,
        handlers=handled,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
