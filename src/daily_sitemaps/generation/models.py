"""Domain models for sitemap generation and its job queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from daily_sitemaps.catalog.keys import BucketKey

DATE_JOB_NAME = "generate_date"
INCREMENTAL_JOB_NAME = "incremental_update"
RECURRING_JOB_KEY = "recurring"


class GenerationOutcome(str, Enum):
    """What one execution did to a bucket's document."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class GenerationErrorCode(str, Enum):
    ALREADY_EXISTS = "already_exists"
    GENERATION_ERROR = "generation_error"
    NO_CONTENT_TYPES = "no_content_types"


@dataclass(slots=True)
class GenerationResult:
    """Typed result of generating one bucket."""

    key: BucketKey
    outcome: GenerationOutcome
    item_count: int = 0
    message: str = ""
    error_code: GenerationErrorCode | None = None

    @property
    def generated(self) -> bool:
        return self.outcome in {GenerationOutcome.CREATED, GenerationOutcome.UPDATED}

    @property
    def succeeded(self) -> bool:
        """Whether the bucket's document now matches its content."""

        return self.outcome in {
            GenerationOutcome.CREATED,
            GenerationOutcome.UPDATED,
            GenerationOutcome.DELETED,
        }


@dataclass(slots=True)
class DetectionResult:
    """Candidate keys of one detection pass; never persisted."""

    missing: list[BucketKey] = field(default_factory=list)
    stale: list[BucketKey] = field(default_factory=list)
    union: list[BucketKey] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {
            "missing": len(self.missing),
            "stale": len(self.stale),
            "total": len(self.union),
        }


@dataclass(slots=True)
class GenerationProgress:
    """Consistent snapshot of the staggered-run progress fields."""

    in_progress: bool
    total: int
    remaining: int
    halted: bool

    @property
    def completed(self) -> int:
        return max(0, self.total - self.remaining)


@dataclass(slots=True)
class GenerationTimestamps:
    last_check: datetime | None
    last_update: datetime | None
    last_run: datetime | None


class BatchStatus(str, Enum):
    COMPLETED = "completed"
    HALTED = "halted"


@dataclass(slots=True)
class BatchSummary:
    """Counters of one synchronous batch."""

    status: BatchStatus = BatchStatus.COMPLETED
    generated_count: int = 0
    deleted_count: int = 0
    failed_count: int = 0
    processed_count: int = 0

    @property
    def success(self) -> bool:
        return self.status == BatchStatus.COMPLETED


@dataclass(slots=True)
class ScheduleSummary:
    """Outcome of decomposing keys into deferred jobs."""

    total: int
    scheduled_count: int
    first_fire_at: datetime | None = None
    last_fire_at: datetime | None = None


class RunOutcome(str, Enum):
    """Result classification of a full or incremental run."""

    COMPLETED = "completed"
    HALTED = "halted"
    NOTHING_TO_DO = "nothing_to_do"
    ALREADY_RUNNING = "already_running"
    SCHEDULED = "scheduled"


@dataclass(slots=True)
class RunSummary:
    """Outcome of one orchestration entry point."""

    outcome: RunOutcome
    detection: DetectionResult | None = None
    batch: BatchSummary | None = None
    schedule: ScheduleSummary | None = None
    cleaned_count: int = 0


class JobStatus(str, Enum):
    """Lifecycle of a deferred job in the queue table."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(slots=True)
class ScheduledJobView:
    """Readable job view for the worker and CLI."""

    job_id: str
    job_name: str
    job_key: str
    status: JobStatus
    fire_at: datetime
    attempt: int
    worker_id: str | None
    started_at: datetime | None
    finished_at: datetime | None
    error_summary: str | None
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class JobHandlingResult:
    """What a job handler reports back to the worker."""

    succeeded: bool
    finished: bool = False
    halted: bool = False
    error_summary: str | None = None
