"""Port definition for background job execution."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class JobRunnerPort(Protocol):
    """Interface for submitting and tracking background jobs."""

    def submit(self, name: str, params: dict[str, object]) -> str:
        """Schedule a job for asynchronous execution.

        Args:
            name: Registered handler name (e.g. ``"drain_notifications"``).
            params: Handler parameters.

        Returns:
            Unique identifier for the submitted job.
        """

    def status(self, job_id: str) -> dict[str, object]:
        """Retrieve current status for a submitted job."""

    def result(self, job_id: str) -> dict[str, object] | None:
        """Return the handler result once the job has succeeded."""


__all__ = ["JobRunnerPort"]
