"""Runtime configuration for the sitemap catalog and its generation jobs."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path

FREQUENCY_SECONDS: dict[str, int] = {
    "5min": 5 * 60,
    "10min": 10 * 60,
    "15min": 15 * 60,
    "30min": 30 * 60,
    "hourly": 60 * 60,
    "2hourly": 2 * 60 * 60,
    "3hourly": 3 * 60 * 60,
}
DEFAULT_FREQUENCY = "15min"


@dataclass(slots=True)
class ContentSettings:
    """Which live content counts toward a day's document."""

    enabled_types: tuple[str, ...] = ("post",)
    eligible_status: str = "publish"


@dataclass(slots=True)
class GenerationSettings:
    """Batch and staggering settings."""

    stagger_interval_seconds: int = 5
    direct_batch_limit: int = 25


@dataclass(slots=True)
class WorkerSettings:
    """Job worker settings."""

    worker_id: str = field(default_factory=lambda: f"{socket.gethostname()}-{os.getpid()}")
    poll_interval_seconds: float = 2.0
    stale_job_seconds: int = 1_800


@dataclass(slots=True)
class TriggerSettings:
    """Periodic incremental update settings."""

    frequency: str = DEFAULT_FREQUENCY


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".daily_sitemaps.db")
    sqlite_busy_timeout_ms: int = 5_000
    content: ContentSettings = field(default_factory=ContentSettings)
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    worker: WorkerSettings = field(default_factory=WorkerSettings)
    trigger: TriggerSettings = field(default_factory=TriggerSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        worker = WorkerSettings(
            poll_interval_seconds=float(os.getenv("DAILY_SITEMAPS_WORKER_POLL_SECONDS", "2.0")),
            stale_job_seconds=int(os.getenv("DAILY_SITEMAPS_STALE_JOB_SECONDS", "1800")),
        )
        worker_id = os.getenv("DAILY_SITEMAPS_WORKER_ID", "").strip()
        if worker_id:
            worker.worker_id = worker_id

        return cls(
            db_path=db_path or Path(os.getenv("DAILY_SITEMAPS_DB_PATH", ".daily_sitemaps.db")),
            sqlite_busy_timeout_ms=int(os.getenv("DAILY_SITEMAPS_SQLITE_BUSY_TIMEOUT_MS", "5000")),
            content=ContentSettings(
                enabled_types=_collect_content_types(),
                eligible_status=os.getenv("DAILY_SITEMAPS_ELIGIBLE_STATUS", "publish").strip(),
            ),
            generation=GenerationSettings(
                stagger_interval_seconds=int(
                    os.getenv("DAILY_SITEMAPS_STAGGER_INTERVAL_SECONDS", "5"),
                ),
                direct_batch_limit=int(os.getenv("DAILY_SITEMAPS_DIRECT_BATCH_LIMIT", "25")),
            ),
            worker=worker,
            trigger=TriggerSettings(
                frequency=os.getenv("DAILY_SITEMAPS_UPDATE_FREQUENCY", DEFAULT_FREQUENCY)
                .strip()
                .lower(),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the scheduler cannot work with."""

        if self.generation.stagger_interval_seconds < 0:
            raise ValueError("DAILY_SITEMAPS_STAGGER_INTERVAL_SECONDS must be >= 0.")
        if self.generation.direct_batch_limit < 0:
            raise ValueError("DAILY_SITEMAPS_DIRECT_BATCH_LIMIT must be >= 0.")
        if self.worker.poll_interval_seconds < 0:
            raise ValueError("DAILY_SITEMAPS_WORKER_POLL_SECONDS must be >= 0.")
        if self.worker.stale_job_seconds <= 0:
            raise ValueError("DAILY_SITEMAPS_STALE_JOB_SECONDS must be > 0.")
        if self.sqlite_busy_timeout_ms <= 0:
            raise ValueError("DAILY_SITEMAPS_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if not self.content.eligible_status:
            raise ValueError("DAILY_SITEMAPS_ELIGIBLE_STATUS must not be empty.")
        validate_frequency(self.trigger.frequency)


def validate_frequency(frequency: str) -> int:
    """Return the interval in seconds for a known update frequency."""

    try:
        return FREQUENCY_SECONDS[frequency]
    except KeyError:
        raise ValueError(
            f"Invalid update frequency: {frequency!r}. "
            f"Expected one of: {', '.join(FREQUENCY_SECONDS)}.",
        ) from None


def _collect_content_types() -> tuple[str, ...]:
    raw = os.getenv("DAILY_SITEMAPS_CONTENT_TYPES")
    if raw is None:
        return ContentSettings().enabled_types
    deduped: list[str] = []
    for part in raw.split(","):
        normalized = part.strip().lower()
        if normalized and normalized not in deduped:
            deduped.append(normalized)
    return tuple(deduped)
