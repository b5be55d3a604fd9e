"""Use-case services: full and incremental generation runs."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.engine import Engine

from daily_sitemaps.catalog.content import ContentQuery, SQLiteContentStore
from daily_sitemaps.catalog.documents import BucketDocumentStore, SQLiteDocumentStore
from daily_sitemaps.catalog.keys import BucketKey
from daily_sitemaps.catalog.serializer import UrlsetSerializer
from daily_sitemaps.config import Settings
from daily_sitemaps.generation.cleanup import CleanupReconciler
from daily_sitemaps.generation.detectors import (
    AllDetector,
    MissingDetector,
    StaleDetector,
    detect_changes,
)
from daily_sitemaps.generation.executor import GenerationExecutor
from daily_sitemaps.generation.jobs import JobQueue
from daily_sitemaps.generation.models import (
    DATE_JOB_NAME,
    INCREMENTAL_JOB_NAME,
    BatchStatus,
    DetectionResult,
    GenerationProgress,
    GenerationResult,
    JobHandlingResult,
    RunOutcome,
    RunSummary,
    ScheduledJobView,
)
from daily_sitemaps.generation.scheduler import Scheduler
from daily_sitemaps.generation.state import GenerationState
from daily_sitemaps.generation.trigger import UpdateTrigger
from daily_sitemaps.storage.common import utc_now

logger = logging.getLogger(__name__)

JobHandler = Callable[[ScheduledJobView], JobHandlingResult]


@dataclass(slots=True)
class GenerationComponents:
    """Collaborators wired for one database."""

    content: ContentQuery
    documents: BucketDocumentStore
    state: GenerationState
    jobs: JobQueue
    executor: GenerationExecutor
    scheduler: Scheduler
    reconciler: CleanupReconciler
    trigger: UpdateTrigger


class GenerationService:
    """Entry points operators and the periodic trigger call."""

    def __init__(
        self,
        components: GenerationComponents,
        *,
        direct_batch_limit: int = 25,
    ) -> None:
        self.components = components
        self.direct_batch_limit = direct_batch_limit
        content = components.content
        documents = components.documents
        self.all_detector = AllDetector(content)
        self.missing_detector = MissingDetector(content, documents)
        self.stale_detector = StaleDetector(content, documents, components.state.get_last_run)

    @property
    def state(self) -> GenerationState:
        return self.components.state

    @property
    def scheduler(self) -> Scheduler:
        return self.components.scheduler

    def run_full(self) -> RunSummary:
        """Regenerate every content-bearing day through staggered jobs."""

        progress = self.state.get_progress()
        if progress.in_progress and not progress.halted:
            logger.info("Full generation refused: a batch is already in progress")
            return RunSummary(outcome=RunOutcome.ALREADY_RUNNING)

        self.state.clear_stop_request()
        keys = self.all_detector.detect()
        if not keys:
            self.state.clear_batch()
            logger.info("Full generation: no dates with content")
            return RunSummary(outcome=RunOutcome.NOTHING_TO_DO)

        schedule = self.scheduler.schedule(keys)
        return RunSummary(outcome=RunOutcome.SCHEDULED, schedule=schedule)

    def run_incremental(self, *, resume: bool = False) -> RunSummary:
        """Regenerate missing and stale days; small sets run inline.

        A halted generation stays halted for periodic runs until an operator
        resumes it.
        """

        if self.state.is_stop_requested():
            if not resume:
                logger.info("Incremental update skipped: generation is halted")
                return RunSummary(outcome=RunOutcome.HALTED)
            self.state.clear_stop_request()
            self.state.clear_batch()
            logger.info("Resuming halted sitemap generation")

        if self.state.is_in_progress():
            logger.info("Incremental update skipped: a batch is already in progress")
            return RunSummary(outcome=RunOutcome.ALREADY_RUNNING)

        self.state.touch_last_check()
        detection = self.detect()
        if not detection.union:
            cleaned = self.components.reconciler.reconcile()
            return RunSummary(
                outcome=RunOutcome.NOTHING_TO_DO,
                detection=detection,
                cleaned_count=cleaned,
            )

        if len(detection.union) <= self.direct_batch_limit:
            batch = self.scheduler.generate_now(detection.union)
            cleaned = self.components.reconciler.reconcile()
            outcome = (
                RunOutcome.COMPLETED if batch.status == BatchStatus.COMPLETED else RunOutcome.HALTED
            )
            return RunSummary(
                outcome=outcome,
                detection=detection,
                batch=batch,
                cleaned_count=cleaned,
            )

        schedule = self.scheduler.schedule(detection.union)
        return RunSummary(outcome=RunOutcome.SCHEDULED, detection=detection, schedule=schedule)

    def schedule_missing(self) -> RunSummary:
        """Schedule only the days that have content but no document."""

        if self.state.is_in_progress():
            return RunSummary(outcome=RunOutcome.ALREADY_RUNNING)
        self.state.clear_stop_request()
        keys = self.missing_detector.detect()
        if not keys:
            return RunSummary(outcome=RunOutcome.NOTHING_TO_DO)
        schedule = self.scheduler.schedule(keys)
        return RunSummary(outcome=RunOutcome.SCHEDULED, schedule=schedule)

    def generate_for_date(self, key: BucketKey, *, force: bool = False) -> GenerationResult:
        result = self.components.executor.execute(key, force=force)
        if result.generated:
            self.state.touch_last_update()
        return result

    def detect(self) -> DetectionResult:
        return detect_changes(self.missing_detector, self.stale_detector)

    def cleanup(self) -> int:
        return self.components.reconciler.reconcile()

    def get_progress(self) -> GenerationProgress:
        return self.state.get_progress()

    def is_generation_in_progress(self) -> bool:
        return self.state.is_in_progress()

    def cancel(self) -> int:
        return self.scheduler.cancel()

    def reset(self) -> None:
        """Operator reset: drop pending date jobs and all generation state."""

        self.components.jobs.cancel_all(DATE_JOB_NAME)
        self.state.clear_all_state()
        logger.info("Sitemap generation state reset")

    def handle_incremental_job(self, job: ScheduledJobView) -> JobHandlingResult:
        """Run the periodic update, then queue its next occurrence."""

        try:
            summary = self.run_incremental()
        finally:
            self.components.trigger.schedule_next()
        logger.info("Periodic sitemap update: %s", summary.outcome.value)
        self.components.jobs.finish_job(job.job_id, succeeded=True)
        return JobHandlingResult(succeeded=True, finished=True)

    def job_handlers(self) -> dict[str, JobHandler]:
        return {
            DATE_JOB_NAME: self.scheduler.handle_scheduled_job,
            INCREMENTAL_JOB_NAME: self.handle_incremental_job,
        }


def build_components(
    engine: Engine,
    settings: Settings,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> GenerationComponents:
    """Wire the SQLite-backed collaborators for one engine."""

    content = SQLiteContentStore(
        engine,
        content_types=settings.content.enabled_types,
        eligible_status=settings.content.eligible_status,
    )
    documents = SQLiteDocumentStore(engine)
    state = GenerationState(engine, clock=clock)
    jobs = JobQueue(engine, clock=clock)
    executor = GenerationExecutor(
        content=content,
        documents=documents,
        serializer=UrlsetSerializer(),
    )
    reconciler = CleanupReconciler(content=content, documents=documents)
    scheduler = Scheduler(
        state=state,
        executor=executor,
        jobs=jobs,
        reconciler=reconciler,
        interval_seconds=settings.generation.stagger_interval_seconds,
        clock=clock,
    )
    trigger = UpdateTrigger(
        engine=engine,
        jobs=jobs,
        state=state,
        default_frequency=settings.trigger.frequency,
        clock=clock,
    )
    return GenerationComponents(
        content=content,
        documents=documents,
        state=state,
        jobs=jobs,
        executor=executor,
        scheduler=scheduler,
        reconciler=reconciler,
        trigger=trigger,
    )


def build_generation_service(
    engine: Engine,
    settings: Settings,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> GenerationService:
    return GenerationService(
        build_components(engine, settings, clock=clock),
        direct_batch_limit=settings.generation.direct_batch_limit,
    )
