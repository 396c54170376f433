"""In-process background runner for opportunistic queue drains.

Each submission runs on a daemon thread. Handlers registered as coalescing
never run concurrently with themselves: a submission that arrives while one
is pending or running is folded into it and triggers exactly one more run
after the current one finishes. A burst of created notification jobs thus
costs at most two back-to-back drains.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Final, Protocol
from uuid import uuid4

from src.config.logging_config import get_logger
from src.observability.metrics import (
    BACKGROUND_JOB_DURATION_SECONDS,
    BACKGROUND_JOBS_SUBMITTED_TOTAL,
)
from src.ports.job_runner import JobRunnerPort

logger = get_logger(__name__)

MAX_FINISHED_JOBS: Final[int] = 200


class JobReporter(Protocol):
    def update(
        self, *, progress: float | None = None, message: str | None = None
    ) -> None: ...


JobHandler = Callable[[dict[str, object], JobReporter], dict[str, object]]


class BackgroundJobStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_finished(self) -> bool:
        return self in (BackgroundJobStatus.SUCCEEDED, BackgroundJobStatus.FAILED)


@dataclass
class JobProgressReporter:
    """Progress sink handed to a running handler."""

    job_id: str
    _runner: InProcessJobRunner

    def update(
        self, *, progress: float | None = None, message: str | None = None
    ) -> None:
        self._runner._update_job(self.job_id, progress=progress, message=message)


@dataclass
class BackgroundJob:
    name: str
    params: dict[str, object]
    status: BackgroundJobStatus = BackgroundJobStatus.QUEUED
    runs: int = 0
    rerun_requested: bool = False
    progress: float = 0.0
    message: str | None = None
    submitted_at: float = field(default_factory=time.time)
    started_at: float | None = None
    finished_at: float | None = None
    result: dict[str, object] | None = None
    error: str | None = None
    thread: threading.Thread | None = field(default=None, repr=False)

    def snapshot(self, job_id: str) -> dict[str, object]:
        return {
            "job_id": job_id,
            "name": self.name,
            "status": self.status.value,
            "runs": self.runs,
            "progress": self.progress,
            "message": self.message,
            "submitted_at": self.submitted_at,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "error": self.error,
        }


class InProcessJobRunner(JobRunnerPort):
    def __init__(
        self,
        handlers: dict[str, JobHandler],
        *,
        coalesce: Iterable[str] = (),
        max_finished: int = MAX_FINISHED_JOBS,
    ):
        if not handlers:
            raise ValueError("handlers must not be empty")
        unknown = set(coalesce) - set(handlers)
        if unknown:
            raise ValueError(f"Cannot coalesce unregistered jobs: {sorted(unknown)}")
        self._handlers = handlers
        self._coalesce = frozenset(coalesce)
        self._max_finished = max_finished
        self._jobs: OrderedDict[str, BackgroundJob] = OrderedDict()
        self._active: dict[str, str] = {}
        self._lock = threading.RLock()

    def submit(self, name: str, params: dict[str, object]) -> str:
        handler = self._handlers.get(name)
        if handler is None:
            raise KeyError(f"Unknown job name: {name}")

        BACKGROUND_JOBS_SUBMITTED_TOTAL.labels(job=name).inc()
        with self._lock:
            active_id = self._active.get(name)
            if active_id is not None:
                active = self._jobs[active_id]
                active.rerun_requested = True
                active.params = dict(params)
                logger.debug(
                    "background_job_coalesced", job_id=active_id, job_name=name
                )
                return active_id

            job_id = str(uuid4())
            job = BackgroundJob(name=name, params=dict(params))
            job.thread = threading.Thread(
                target=self._run,
                args=(job_id, handler),
                name=f"job-{name}-{job_id[:8]}",
                daemon=True,
            )
            self._jobs[job_id] = job
            if name in self._coalesce:
                self._active[name] = job_id
            self._prune_finished()

        logger.info("background_job_submitted", job_id=job_id, job_name=name)
        job.thread.start()
        return job_id

    def status(self, job_id: str) -> dict[str, object]:
        with self._lock:
            return self._get(job_id).snapshot(job_id)

    def result(self, job_id: str) -> dict[str, object] | None:
        with self._lock:
            return self._get(job_id).result

    def wait(self, job_id: str, timeout: float | None = None) -> dict[str, object]:
        """Join the job's thread (bounded by ``timeout``) and return its status."""

        with self._lock:
            thread = self._get(job_id).thread
        if thread is not None:
            thread.join(timeout)
        return self.status(job_id)

    def wait_all(self, timeout: float | None = None) -> list[dict[str, object]]:
        """Join every known job; one-shot processes call this before exiting."""

        with self._lock:
            job_ids = list(self._jobs)
        return [self.wait(job_id, timeout) for job_id in job_ids]

    def _get(self, job_id: str) -> BackgroundJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(f"Unknown job_id: {job_id}")
        return job

    def _prune_finished(self) -> None:
        finished = [
            job_id for job_id, job in self._jobs.items() if job.status.is_finished
        ]
        for job_id in finished[: max(0, len(finished) - self._max_finished)]:
            del self._jobs[job_id]

    def _run(self, job_id: str, handler: JobHandler) -> None:
        with self._lock:
            job = self._jobs[job_id]
            job.status = BackgroundJobStatus.RUNNING
            job.started_at = time.time()

        reporter = JobProgressReporter(job_id=job_id, _runner=self)
        while True:
            with self._lock:
                job.rerun_requested = False
                job.runs += 1
                params = dict(job.params)

            start_time = time.perf_counter()
            try:
                result = handler(params, reporter)
            except Exception as exc:  # noqa: BLE001
                logger.exception(
                    "background_job_failed", job_id=job_id, job_name=job.name
                )
                outcome, result, error = BackgroundJobStatus.FAILED, None, str(exc)
            else:
                outcome, error = BackgroundJobStatus.SUCCEEDED, None
            duration = time.perf_counter() - start_time
            BACKGROUND_JOB_DURATION_SECONDS.labels(job=job.name).observe(duration)

            with self._lock:
                if job.rerun_requested:
                    continue
                job.status = outcome
                job.result = result
                job.error = error
                job.finished_at = time.time()
                if outcome == BackgroundJobStatus.SUCCEEDED:
                    job.progress = 1.0
                    job.message = "Completed"
                else:
                    job.message = "Job failed"
                if self._active.get(job.name) == job_id:
                    del self._active[job.name]
                break

        logger.info(
            "background_job_finished",
            job_id=job_id,
            job_name=job.name,
            status=job.status.value,
            runs=job.runs,
        )

    def _update_job(
        self, job_id: str, *, progress: float | None, message: str | None
    ) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return
            if progress is not None:
                job.progress = max(0.0, min(progress, 1.0))
            if message is not None:
                job.message = message


__all__ = [
    "BackgroundJobStatus",
    "InProcessJobRunner",
    "JobHandler",
    "JobProgressReporter",
    "JobReporter",
]
