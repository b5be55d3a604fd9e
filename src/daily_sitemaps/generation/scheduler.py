"""Run buckets inline or decompose them into staggered background jobs."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from daily_sitemaps.catalog.keys import BucketKey, InvalidBucketKeyError
from daily_sitemaps.generation.cleanup import CleanupReconciler
from daily_sitemaps.generation.executor import GenerationExecutor
from daily_sitemaps.generation.jobs import JobQueue
from daily_sitemaps.generation.models import (
    DATE_JOB_NAME,
    BatchStatus,
    BatchSummary,
    GenerationOutcome,
    JobHandlingResult,
    ScheduledJobView,
    ScheduleSummary,
)
from daily_sitemaps.generation.state import GenerationState
from daily_sitemaps.storage.common import utc_now

logger = logging.getLogger(__name__)

HALTED_ERROR = "Generation halted by operator."


class Scheduler:
    """Coordinates executor calls with generation state and the job queue."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        state: GenerationState,
        executor: GenerationExecutor,
        jobs: JobQueue,
        reconciler: CleanupReconciler,
        interval_seconds: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.state = state
        self.executor = executor
        self.jobs = jobs
        self.reconciler = reconciler
        self.interval_seconds = interval_seconds
        self.clock = clock

    def generate_now(self, keys: Iterable[BucketKey]) -> BatchSummary:
        """Generate every key synchronously, stopping early on a halt request.

        ``last_run`` advances to the time the batch started, even when halted;
        ``last_update`` advances only when at least one document was written.
        """

        ordered = sorted(set(keys))
        summary = BatchSummary()
        if not ordered:
            return summary

        started_at = self.clock()
        for key in ordered:
            if self.state.is_stop_requested():
                summary.status = BatchStatus.HALTED
                logger.info(
                    "Sitemap generation halted after %d of %d dates",
                    summary.processed_count,
                    len(ordered),
                )
                break
            result = self.executor.execute(key, force=True)
            summary.processed_count += 1
            if result.generated:
                summary.generated_count += 1
            elif result.outcome == GenerationOutcome.DELETED:
                summary.deleted_count += 1
            elif result.outcome == GenerationOutcome.FAILED:
                summary.failed_count += 1
                logger.warning("Sitemap generation failed for %s: %s", key, result.message)

        if summary.generated_count > 0:
            self.state.touch_last_update()
        self.state.touch_last_run(started_at)
        logger.info(
            "Sitemap batch %s: generated=%d deleted=%d failed=%d processed=%d",
            summary.status.value,
            summary.generated_count,
            summary.deleted_count,
            summary.failed_count,
            summary.processed_count,
        )
        return summary

    def schedule(self, keys: Iterable[BucketKey]) -> ScheduleSummary:
        """Enqueue one date job per key, ``interval_seconds`` apart; never runs inline.

        Keys that already have a pending date job are not enqueued twice.
        """

        ordered = sorted(set(keys))
        if not ordered:
            return ScheduleSummary(total=0, scheduled_count=0)

        self.state.start_batch(len(ordered))
        now = self.clock()
        summary = ScheduleSummary(total=len(ordered), scheduled_count=0)
        for key in ordered:
            if self.jobs.has_pending(DATE_JOB_NAME, key.value):
                logger.debug("Date job for %s is already pending", key)
                continue
            fire_at = now + timedelta(seconds=summary.scheduled_count * self.interval_seconds)
            self.jobs.schedule_once(fire_at, DATE_JOB_NAME, key.value)
            summary.scheduled_count += 1
            if summary.first_fire_at is None:
                summary.first_fire_at = fire_at
            summary.last_fire_at = fire_at

        logger.info(
            "Scheduled %d of %d sitemap dates every %ds",
            summary.scheduled_count,
            summary.total,
            self.interval_seconds,
        )
        return summary

    def record_date_completion(self, success: bool) -> int | None:
        """Count one finished date job; close the batch when none remain.

        Returns ``None`` when there was no open batch to count against, for
        example after a cancel raced the job. ``last_run`` then stays put.
        """

        remaining = self.state.decrement_remaining()
        if success:
            self.state.touch_last_update()
        if remaining is None:
            logger.info("Date job finished outside an open batch; watermark unchanged")
        elif remaining == 0:
            self.state.clear_batch()
            self.state.touch_last_run()
            logger.info("Staggered sitemap generation completed")
        return remaining

    def handle_scheduled_job(self, job: ScheduledJobView) -> JobHandlingResult:
        """Run one claimed date job; safe to call again for a redelivered job."""

        if self.state.is_stop_requested():
            self.jobs.cancel_all(DATE_JOB_NAME)
            self.jobs.finish_job(job.job_id, succeeded=False, error=HALTED_ERROR)
            logger.info("Skipping date job %s for %s: generation halted", job.job_id, job.job_key)
            return JobHandlingResult(
                succeeded=False,
                finished=True,
                halted=True,
                error_summary=HALTED_ERROR,
            )

        try:
            key = BucketKey.parse(job.job_key)
        except InvalidBucketKeyError as error:
            if self.jobs.finish_job(job.job_id, succeeded=False, error=str(error)):
                self._complete(success=False)
            return JobHandlingResult(succeeded=False, finished=True, error_summary=str(error))

        result = self.executor.execute(key, force=True)
        failed = result.outcome == GenerationOutcome.FAILED
        error_summary = result.message if failed else None
        if not self.jobs.finish_job(job.job_id, succeeded=not failed, error=error_summary):
            logger.info("Date job %s for %s was already finished", job.job_id, key)
            return JobHandlingResult(
                succeeded=not failed,
                finished=True,
                error_summary=error_summary,
            )

        self._complete(success=result.succeeded)
        return JobHandlingResult(succeeded=not failed, finished=True, error_summary=error_summary)

    def cancel(self) -> int:
        """Unschedule pending date jobs, clear progress and raise the halt flag."""

        canceled = self.jobs.cancel_all(DATE_JOB_NAME)
        self.state.clear_batch()
        self.state.request_stop()
        logger.info("Sitemap generation canceled; %d pending jobs removed", canceled)
        return canceled

    def _complete(self, *, success: bool) -> None:
        if self.record_date_completion(success) == 0:
            self.reconciler.reconcile()
