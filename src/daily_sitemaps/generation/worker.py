"""Queue worker that delivers due jobs to their handlers."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta

from daily_sitemaps.generation.jobs import JobQueue
from daily_sitemaps.generation.models import JobHandlingResult, ScheduledJobView
from daily_sitemaps.generation.services import JobHandler

logger = logging.getLogger(__name__)


class UnknownJobError(RuntimeError):
    """Claimed job has no registered handler."""


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    halted: int = 0
    recovered: int = 0
    idle_polls: int = 0

    def add(self, other: WorkerRunSummary) -> None:
        self.processed += other.processed
        self.succeeded += other.succeeded
        self.failed += other.failed
        self.halted += other.halted
        self.recovered += other.recovered
        self.idle_polls += other.idle_polls


class JobWorker:
    """Drains due jobs one at a time."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        jobs: JobQueue,
        handlers: Mapping[str, JobHandler],
        worker_id: str,
        poll_interval_seconds: float = 2.0,
        stale_job_seconds: int = 1800,
    ) -> None:
        self.jobs = jobs
        self.handlers = dict(handlers)
        self.worker_id = worker_id
        self.poll_interval_seconds = poll_interval_seconds
        self.stale_job_seconds = stale_job_seconds
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    def run_once(self) -> WorkerRunSummary:
        """Process at most one due job."""

        summary = WorkerRunSummary()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        summary.recovered = self._recover_stale_jobs()
        job = self.jobs.claim_next_due(self.worker_id)
        if job is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        result = self._dispatch(job)
        if not result.finished:
            self.jobs.finish_job(
                job.job_id,
                succeeded=result.succeeded,
                error=result.error_summary,
            )
        if result.halted:
            summary.halted = 1
        elif result.succeeded:
            summary.succeeded = 1
        else:
            summary.failed = 1
        return summary

    def run_loop(
        self,
        *,
        max_jobs: int | None = None,
        max_idle_polls: int | None = 1,
    ) -> WorkerRunSummary:
        """Run until the queue stays idle, ``max_jobs`` is reached, or a stop signal arrives.

        Args:
            max_jobs: Stop after processing this many jobs (None = unlimited).
            max_idle_polls: Consecutive empty polls before exiting (None = keep polling).
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        with self._signal_handlers():
            while True:
                if self._stop_requested:
                    return aggregate
                if max_jobs is not None and aggregate.processed >= max_jobs:
                    return aggregate

                summary = self.run_once()
                aggregate.add(summary)

                if summary.processed == 0:
                    consecutive_idle += 1
                    if max_idle_polls is not None and consecutive_idle >= max_idle_polls:
                        return aggregate
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue
                consecutive_idle = 0

    def request_stop(self, *, signal_name: str = "manual") -> None:
        """Finish the current job, then leave the loop."""

        self._stop_requested = True
        self._stop_signal_name = signal_name
        logger.info("Worker %s stopping after current job (%s)", self.worker_id, signal_name)

    def _dispatch(self, job: ScheduledJobView) -> JobHandlingResult:
        try:
            handler = self._resolve_handler(job)
        except UnknownJobError as error:
            logger.error("%s", error)
            return JobHandlingResult(succeeded=False, error_summary=str(error))

        try:
            return handler(job)
        except Exception as error:  # noqa: BLE001
            logger.exception("Job %s (%s %s) failed", job.job_id, job.job_name, job.job_key)
            return JobHandlingResult(succeeded=False, error_summary=f"{type(error).__name__}: {error}")

    def _resolve_handler(self, job: ScheduledJobView) -> JobHandler:
        handler = self.handlers.get(job.job_name)
        if handler is None:
            raise UnknownJobError(f"No handler registered for job {job.job_name!r} ({job.job_id}).")
        return handler

    def _recover_stale_jobs(self) -> int:
        if self.stale_job_seconds <= 0:
            return 0
        return self.jobs.recover_stale_jobs(timedelta(seconds=self.stale_job_seconds))

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            installed = False
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
