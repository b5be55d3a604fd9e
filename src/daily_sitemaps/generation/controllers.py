"""Controllers for sitemap CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from daily_sitemaps.catalog.content import SQLiteContentStore
from daily_sitemaps.catalog.documents import SQLiteDocumentStore
from daily_sitemaps.catalog.keys import BucketKey, parse_keys
from daily_sitemaps.catalog.maintenance import CatalogRecounter, CatalogValidator
from daily_sitemaps.catalog.models import ContentItemWrite
from daily_sitemaps.config import Settings
from daily_sitemaps.generation.detectors import describe_changes
from daily_sitemaps.generation.models import DATE_JOB_NAME, RunOutcome, RunSummary
from daily_sitemaps.generation.services import GenerationService, build_generation_service
from daily_sitemaps.generation.trigger import TriggerStatus
from daily_sitemaps.generation.worker import JobWorker
from daily_sitemaps.storage.common import open_catalog_engine


@dataclass(slots=True)
class GenerationCommand:
    """CLI input for commands that only need the database."""

    db_path: Path | None


@dataclass(slots=True)
class IncrementalCommand:
    """CLI input for an incremental run."""

    db_path: Path | None
    resume: bool = False


@dataclass(slots=True)
class GenerateDateCommand:
    """CLI input for generating one day."""

    db_path: Path | None
    date: str
    force: bool = False


@dataclass(slots=True)
class WorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_jobs: int | None
    max_idle_polls: int | None = 1


@dataclass(slots=True)
class CronCommand:
    """CLI input for periodic trigger management."""

    db_path: Path | None
    frequency: str | None = None


@dataclass(slots=True)
class SitemapListCommand:
    """CLI input for document listing."""

    db_path: Path | None
    limit: int


@dataclass(slots=True)
class SitemapKeyCommand:
    """CLI input for single-document operations."""

    db_path: Path | None
    date: str


@dataclass(slots=True)
class SitemapDeleteCommand:
    """CLI input for document deletion."""

    db_path: Path | None
    date: str | None
    delete_all: bool = False


@dataclass(slots=True)
class ContentWriteCommand:
    """CLI input for seeding one live content item."""

    db_path: Path | None
    item_id: str
    url: str
    published_at: datetime
    modified_at: datetime | None = None
    content_type: str = "post"
    status: str = "publish"
    title: str = ""


@dataclass(slots=True)
class ContentDeleteCommand:
    """CLI input for removing one live content item."""

    db_path: Path | None
    item_id: str


@dataclass(slots=True)
class RecountCommand:
    """CLI input for item recount."""

    db_path: Path | None
    full: bool = False


@dataclass(slots=True)
class ValidateCommand:
    """CLI input for stored-document validation."""

    db_path: Path | None
    dates: tuple[str, ...] = ()


class SitemapCliController:
    """Coordinates generation, worker and catalog CLI operations."""

    def generate_full(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            return _render_run(service.run_full())

    def generate_incremental(self, command: IncrementalCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            return _render_run(service.run_incremental(resume=command.resume))

    def generate_date(self, command: GenerateDateCommand) -> list[str]:
        key = BucketKey.parse(command.date)
        with _service(_settings(command.db_path)) as service:
            result = service.generate_for_date(key, force=command.force)
        line = f"{key}: {result.outcome.value} items={result.item_count}"
        if result.error_code is not None:
            line += f" error={result.error_code.value}"
        return [line, result.message] if result.message else [line]

    def schedule_missing(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            return _render_run(service.schedule_missing())

    def progress(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            progress = service.get_progress()
            timestamps = service.state.timestamps()
            pending = service.components.jobs.next_fire_at(DATE_JOB_NAME)
        return [
            "Progress: "
            f"in_progress={_yes_no(progress.in_progress)} total={progress.total} "
            f"remaining={progress.remaining} completed={progress.completed} "
            f"halted={_yes_no(progress.halted)}",
            f"Next date job: {_format_time(pending)}",
            f"Last check: {_format_time(timestamps.last_check)}",
            f"Last update: {_format_time(timestamps.last_update)}",
            f"Last run: {_format_time(timestamps.last_run)}",
        ]

    def cancel(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            canceled = service.cancel()
        return [f"Generation halted: canceled_jobs={canceled}"]

    def reset(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            service.reset()
        return ["Generation state reset."]

    def run_worker(self, command: WorkerCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _service(settings) as service:
            worker = JobWorker(
                jobs=service.components.jobs,
                handlers=service.job_handlers(),
                worker_id=settings.worker.worker_id,
                poll_interval_seconds=settings.worker.poll_interval_seconds,
                stale_job_seconds=settings.worker.stale_job_seconds,
            )
            summary = (
                worker.run_once()
                if command.once
                else worker.run_loop(
                    max_jobs=command.max_jobs,
                    max_idle_polls=command.max_idle_polls,
                )
            )
        return [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} halted={summary.halted} "
            f"recovered={summary.recovered} idle_polls={summary.idle_polls}",
        ]

    def cron_enable(self, command: CronCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            return _render_trigger(service.components.trigger.enable(command.frequency))

    def cron_disable(self, command: CronCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            return _render_trigger(service.components.trigger.disable())

    def cron_reset(self, command: CronCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            return _render_trigger(service.components.trigger.reset())

    def cron_status(self, command: CronCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            return _render_trigger(service.components.trigger.status())

    def cron_frequency(self, command: CronCommand) -> list[str]:
        if command.frequency is None:
            raise ValueError("Frequency is required.")
        with _service(_settings(command.db_path)) as service:
            return _render_trigger(service.components.trigger.set_frequency(command.frequency))

    def list_sitemaps(self, command: SitemapListCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            documents = _document_store(service).list_documents(limit=command.limit)
        if not documents:
            return ["No sitemaps stored."]
        return [
            f"{document.key} items={document.item_count} "
            f"updated={_format_time(document.updated_at)}"
            for document in documents
        ]

    def get_sitemap(self, command: SitemapKeyCommand) -> list[str]:
        key = BucketKey.parse(command.date)
        with _service(_settings(command.db_path)) as service:
            document = service.components.documents.get(key)
        if document is None:
            raise LookupError(f"No sitemap stored for {key}.")
        return [document.body]

    def delete_sitemaps(self, command: SitemapDeleteCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            store = _document_store(service)
            if command.delete_all:
                return [f"Deleted sitemaps: {store.delete_all()}"]
            if command.date is None:
                raise ValueError("Pass --date or --all.")
            key = BucketKey.parse(command.date)
            if not store.delete(key):
                return [f"No sitemap stored for {key}."]
        return [f"Deleted sitemap for {key}."]

    def stats(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            stats = _document_store(service).stats()
        first = stats.first_key.value if stats.first_key else "-"
        last = stats.last_key.value if stats.last_key else "-"
        return [
            f"Sitemaps: {stats.document_count}",
            f"Total items: {stats.total_items}",
            f"Date range: {first} .. {last}",
        ]

    def recount(self, command: RecountCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            recounter = CatalogRecounter(
                _document_store(service),
                should_stop=service.state.is_stop_requested,
            )
            result = recounter.full_recount() if command.full else recounter.fast_recount()
        lines = [
            f"Recount ({'full' if command.full else 'fast'}): "
            f"sitemaps={result.document_count} items={result.total_items}",
        ]
        if command.full:
            lines.append(f"Corrected: {result.corrected} unreadable={result.unreadable}")
        if result.halted:
            lines.append("Recount halted by stop request.")
        return lines

    def validate(self, command: ValidateCommand) -> list[str]:
        keys = parse_keys(command.dates) if command.dates else None
        with _service(_settings(command.db_path)) as service:
            validator = CatalogValidator(
                _document_store(service),
                should_stop=service.state.is_stop_requested,
            )
            result = validator.validate(keys)
        if result.document_count == 0 and not result.halted:
            return ["No sitemaps found to validate."]
        lines = [
            f"Validated {result.document_count} sitemaps: {result.valid} valid, "
            f"{result.invalid} invalid with {result.error_count} total errors",
        ]
        lines.extend(f"{key}: {problem}" for key, problem in result.problems)
        if result.halted:
            lines.append("Validation halted by stop request.")
        return lines

    def cleanup(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            deleted = service.cleanup()
        return [f"Orphaned sitemaps deleted: {deleted}"]

    def add_content(self, command: ContentWriteCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            _content_store(service).upsert_item(
                ContentItemWrite(
                    item_id=command.item_id,
                    url=command.url,
                    published_at=command.published_at,
                    modified_at=command.modified_at,
                    content_type=command.content_type,
                    status=command.status,
                    title=command.title,
                ),
            )
        key = BucketKey.from_datetime(command.published_at)
        return [f"Content item stored: item_id={command.item_id} date={key}"]

    def delete_content(self, command: ContentDeleteCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            deleted = _content_store(service).delete_item(command.item_id)
        if not deleted:
            return [f"No content item {command.item_id}."]
        return [f"Content item deleted: item_id={command.item_id}"]

    def detect(self, command: GenerationCommand) -> list[str]:
        with _service(_settings(command.db_path)) as service:
            detection = service.detect()
        lines = [describe_changes(detection)]
        lines.extend(f"missing {key}" for key in detection.missing)
        lines.extend(f"stale {key}" for key in detection.stale)
        return lines


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


@contextmanager
def _service(settings: Settings) -> Iterator[GenerationService]:
    engine = open_catalog_engine(
        db_path=settings.db_path,
        busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    try:
        yield build_generation_service(engine, settings)
    finally:
        engine.dispose()


def _document_store(service: GenerationService) -> SQLiteDocumentStore:
    store = service.components.documents
    if not isinstance(store, SQLiteDocumentStore):
        raise TypeError("Catalog maintenance requires the SQLite document store.")
    return store


def _content_store(service: GenerationService) -> SQLiteContentStore:
    store = service.components.content
    if not isinstance(store, SQLiteContentStore):
        raise TypeError("Seeding content requires the SQLite content store.")
    return store


def _render_run(summary: RunSummary) -> list[str]:
    lines = [f"Run outcome: {summary.outcome.value}"]
    if summary.detection is not None:
        lines.append(describe_changes(summary.detection))
    if summary.batch is not None:
        batch = summary.batch
        lines.append(
            f"Batch {batch.status.value}: generated={batch.generated_count} "
            f"deleted={batch.deleted_count} failed={batch.failed_count} "
            f"processed={batch.processed_count}",
        )
    if summary.schedule is not None:
        schedule = summary.schedule
        lines.append(
            f"Scheduled {schedule.scheduled_count} of {schedule.total} dates, "
            f"first at {_format_time(schedule.first_fire_at)}, "
            f"last at {_format_time(schedule.last_fire_at)}",
        )
    if summary.cleaned_count:
        lines.append(f"Orphaned sitemaps deleted: {summary.cleaned_count}")
    if summary.outcome == RunOutcome.ALREADY_RUNNING:
        lines.append("A generation batch is already in progress; cancel it or wait.")
    elif summary.outcome == RunOutcome.HALTED and summary.batch is None:
        lines.append("Generation is halted; resume with `generate incremental --resume`.")
    return lines


def _render_trigger(status: TriggerStatus) -> list[str]:
    return [
        f"Periodic update: enabled={_yes_no(status.enabled)} frequency={status.frequency}",
        f"Next run: {_format_time(status.next_run)}",
        f"Generating: {_yes_no(status.generating)} halted={_yes_no(status.halted)}",
        f"Last run: {_format_time(status.last_run)}",
    ]


def _yes_no(value: bool) -> str:
    return "yes" if value else "no"


def _format_time(value: datetime | None) -> str:
    if value is None:
        return "never"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")
