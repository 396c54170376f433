"""Common runtime helpers for worker and scheduler scripts."""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable
from dataclasses import dataclass
from types import FrameType
from typing import Protocol

from src.config.logging_config import get_logger, setup_logging
from src.config.settings import Settings

logger = get_logger(__name__)


class ShutdownSignal(Protocol):
    def is_set(self) -> bool: ...

    def wait(self, timeout: float) -> bool: ...


@dataclass
class ShutdownController:
    """Shutdown state shared across signal handlers and loops."""

    _event: threading.Event

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)

    def request(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("shutdown_signal_received", signal=sig_name)
        self._event.set()


def create_shutdown_controller() -> ShutdownController:
    return ShutdownController(threading.Event())


def install_signal_handlers(controller: ShutdownController) -> None:
    """Register SIGTERM/SIGINT handlers for graceful shutdown."""

    signal.signal(signal.SIGTERM, controller.request)
    signal.signal(signal.SIGINT, controller.request)


def initialize_logging(settings: Settings, *, json_logs: bool | None = None) -> None:
    """Initialize structlog-based logging; the CLI flag overrides settings."""

    use_json = settings.json_logs if json_logs is None else json_logs
    setup_logging(log_level=settings.log_level, json_logs=use_json)
    logger.info("logging_initialized", level=settings.log_level, json_logs=use_json)


def run_scheduler_loop(
    *,
    controller: ShutdownSignal,
    interval_seconds: float,
    run_once: bool,
    action: Callable[[], object],
) -> int:
    """Execute ``action`` at a fixed interval until shutdown.

    Returns:
        Number of iterations run
    """

    interval_seconds = max(0.1, interval_seconds)
    logger.info("scheduler_loop_started", interval=interval_seconds, run_once=run_once)
    iteration = 0
    while not controller.is_set():
        iteration += 1
        try:
            action()
        except Exception:  # noqa: BLE001
            logger.exception("scheduler_iteration_failed", iteration=iteration)
            if run_once:
                raise
        if run_once:
            break
        controller.wait(interval_seconds)

    logger.info("scheduler_loop_stopped", iterations=iteration)
    return iteration


__all__ = [
    "ShutdownController",
    "ShutdownSignal",
    "create_shutdown_controller",
    "initialize_logging",
    "install_signal_handlers",
    "run_scheduler_loop",
]
