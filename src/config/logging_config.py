"""structlog setup for the notification workers and scripts.

Events are snake_case names with keyword fields. Worker and job ids come
from contextvars (see ``src.observability.tracing``), so call sites never
pass them explicitly. Device push tokens are masked before rendering: gateway
error messages quote them verbatim and they end up in retry logs.
"""

import logging
import re
import sys
from collections.abc import Iterable
from typing import Any

import structlog
from structlog.types import EventDict, Processor

APP_NAME = "hooked_notifications"

# Third-party loggers that are chatty at INFO (push gateway transport)
QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore")

_PUSH_TOKEN_RE = re.compile(r"(Expo(?:nent)?PushToken)\[([^\]]*)\]")
_VISIBLE_TOKEN_CHARS = 4


def mask_push_token(value: str) -> str:
    """Keep the token kind and its last characters, enough to correlate."""

    def _mask(match: re.Match[str]) -> str:
        secret = match.group(2)
        return f"{match.group(1)}[***{secret[-_VISIBLE_TOKEN_CHARS:]}]"

    return _PUSH_TOKEN_RE.sub(_mask, value)


def _mask_value(value: Any) -> Any:
    if isinstance(value, str):
        return mask_push_token(value)
    if isinstance(value, list | tuple):
        return type(value)(_mask_value(item) for item in value)
    return value


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["app"] = APP_NAME
    return event_dict


def mask_push_tokens(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Processor masking Expo push tokens in every string field."""

    for key, value in event_dict.items():
        event_dict[key] = _mask_value(value)
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    *,
    quiet_loggers: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Configure stdlib logging and structlog for one process.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        json_logs: JSON lines for log shippers, otherwise colored console output
        quiet_loggers: Library loggers raised to WARNING
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]

    if json_logs:
        processors.append(structlog.processors.format_exc_info)
        processors.append(mask_push_tokens)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(mask_push_tokens)
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    """Bind fields onto every subsequent log entry of the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)
