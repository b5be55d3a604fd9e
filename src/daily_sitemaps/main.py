"""CLI entrypoint for daily-sitemaps."""

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TypeVar

import rich_click as click

from daily_sitemaps import __version__
from daily_sitemaps.config import FREQUENCY_SECONDS
from daily_sitemaps.generation.controllers import (
    ContentDeleteCommand,
    ContentWriteCommand,
    CronCommand,
    GenerateDateCommand,
    GenerationCommand,
    IncrementalCommand,
    RecountCommand,
    SitemapCliController,
    SitemapDeleteCommand,
    SitemapKeyCommand,
    SitemapListCommand,
    ValidateCommand,
    WorkerCommand,
)

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SitemapCliController()

CommandT = TypeVar("CommandT")

_DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]

db_path_option = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path.",
)


@click.group()
@click.version_option(version=__version__, prog_name="daily-sitemaps")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def daily_sitemaps(log_level: str) -> None:
    """Daily sitemap catalog CLI."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@daily_sitemaps.group()
def generate() -> None:
    """Sitemap generation commands."""


@generate.command("full")
@db_path_option
def generate_full(db_path: Path | None) -> None:
    """Schedule regeneration of every day that has content."""

    _emit_lines(_run(CONTROLLER.generate_full, GenerationCommand(db_path=db_path)))


@generate.command("incremental")
@db_path_option
@click.option(
    "--resume/--no-resume",
    default=False,
    show_default=True,
    help="Clear a previous halt request before running.",
)
def generate_incremental(db_path: Path | None, resume: bool) -> None:
    """Generate missing and stale sitemaps."""

    _emit_lines(
        _run(
            CONTROLLER.generate_incremental,
            IncrementalCommand(db_path=db_path, resume=resume),
        ),
    )


@generate.command("date")
@db_path_option
@click.option("--date", "date_value", required=True, help="Day to generate, YYYY-MM-DD.")
@click.option(
    "--force/--no-force",
    default=False,
    show_default=True,
    help="Regenerate even when a sitemap already exists.",
)
def generate_date(db_path: Path | None, date_value: str, force: bool) -> None:
    """Generate the sitemap of one day."""

    _emit_lines(
        _run(
            CONTROLLER.generate_date,
            GenerateDateCommand(db_path=db_path, date=date_value, force=force),
        ),
    )


@generate.command("schedule-missing")
@db_path_option
def generate_schedule_missing(db_path: Path | None) -> None:
    """Schedule generation of days that have content but no sitemap."""

    _emit_lines(_run(CONTROLLER.schedule_missing, GenerationCommand(db_path=db_path)))


@daily_sitemaps.command("progress")
@db_path_option
def progress(db_path: Path | None) -> None:
    """Show staggered generation progress and watermarks."""

    _emit_lines(_run(CONTROLLER.progress, GenerationCommand(db_path=db_path)))


@daily_sitemaps.command("cancel")
@db_path_option
def cancel(db_path: Path | None) -> None:
    """Halt generation and unschedule pending date jobs."""

    _emit_lines(_run(CONTROLLER.cancel, GenerationCommand(db_path=db_path)))


@daily_sitemaps.command("reset")
@db_path_option
def reset(db_path: Path | None) -> None:
    """Forget generation progress, halt flag and watermarks."""

    _emit_lines(_run(CONTROLLER.reset, GenerationCommand(db_path=db_path)))


@daily_sitemaps.command("worker")
@db_path_option
@click.option("--once", is_flag=True, default=False, help="Process at most one job.")
@click.option(
    "--max-jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many jobs.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=1),
    default=None,
    help="Exit after this many consecutive empty polls (default: keep polling).",
)
def worker(
    db_path: Path | None,
    once: bool,
    max_jobs: int | None,
    max_idle_polls: int | None,
) -> None:
    """Run due generation jobs."""

    _emit_lines(
        _run(
            CONTROLLER.run_worker,
            WorkerCommand(
                db_path=db_path,
                once=once,
                max_jobs=max_jobs,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


@daily_sitemaps.group()
def cron() -> None:
    """Periodic incremental update commands."""


@cron.command("enable")
@db_path_option
@click.option(
    "--frequency",
    type=click.Choice(list(FREQUENCY_SECONDS)),
    default=None,
    help="Update frequency; keeps the stored one when omitted.",
)
def cron_enable(db_path: Path | None, frequency: str | None) -> None:
    """Enable periodic incremental updates."""

    _emit_lines(_run(CONTROLLER.cron_enable, CronCommand(db_path=db_path, frequency=frequency)))


@cron.command("disable")
@db_path_option
def cron_disable(db_path: Path | None) -> None:
    """Disable periodic updates and clear generation state."""

    _emit_lines(_run(CONTROLLER.cron_disable, CronCommand(db_path=db_path)))


@cron.command("reset")
@db_path_option
def cron_reset(db_path: Path | None) -> None:
    """Reschedule the periodic update from now."""

    _emit_lines(_run(CONTROLLER.cron_reset, CronCommand(db_path=db_path)))


@cron.command("status")
@db_path_option
def cron_status(db_path: Path | None) -> None:
    """Show periodic update status."""

    _emit_lines(_run(CONTROLLER.cron_status, CronCommand(db_path=db_path)))


@cron.command("frequency")
@db_path_option
@click.argument("frequency", type=click.Choice(list(FREQUENCY_SECONDS)))
def cron_frequency(db_path: Path | None, frequency: str) -> None:
    """Change the periodic update frequency."""

    _emit_lines(
        _run(CONTROLLER.cron_frequency, CronCommand(db_path=db_path, frequency=frequency)),
    )


@daily_sitemaps.group()
def sitemaps() -> None:
    """Stored sitemap commands."""


@sitemaps.command("list")
@db_path_option
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=10_000),
    default=50,
    show_default=True,
    help="Max number of sitemaps to print, newest day first.",
)
def sitemaps_list(db_path: Path | None, limit: int) -> None:
    """List stored sitemaps with their item counts."""

    _emit_lines(_run(CONTROLLER.list_sitemaps, SitemapListCommand(db_path=db_path, limit=limit)))


@sitemaps.command("get")
@db_path_option
@click.option("--date", "date_value", required=True, help="Day, YYYY-MM-DD.")
def sitemaps_get(db_path: Path | None, date_value: str) -> None:
    """Print the stored XML of one day."""

    _emit_lines(_run(CONTROLLER.get_sitemap, SitemapKeyCommand(db_path=db_path, date=date_value)))


@sitemaps.command("delete")
@db_path_option
@click.option("--date", "date_value", default=None, help="Day, YYYY-MM-DD.")
@click.option("--all", "delete_all", is_flag=True, default=False, help="Delete every sitemap.")
def sitemaps_delete(db_path: Path | None, date_value: str | None, delete_all: bool) -> None:
    """Delete one stored sitemap or all of them."""

    _emit_lines(
        _run(
            CONTROLLER.delete_sitemaps,
            SitemapDeleteCommand(db_path=db_path, date=date_value, delete_all=delete_all),
        ),
    )


@sitemaps.command("stats")
@db_path_option
def sitemaps_stats(db_path: Path | None) -> None:
    """Show sitemap count, item total and covered date range."""

    _emit_lines(_run(CONTROLLER.stats, GenerationCommand(db_path=db_path)))


@sitemaps.command("recount")
@db_path_option
@click.option(
    "--full/--fast",
    default=False,
    show_default=True,
    help="Re-parse every stored document instead of summing stored counts.",
)
def sitemaps_recount(db_path: Path | None, full: bool) -> None:
    """Recount items across stored sitemaps."""

    _emit_lines(_run(CONTROLLER.recount, RecountCommand(db_path=db_path, full=full)))


@sitemaps.command("validate")
@db_path_option
@click.option(
    "--date",
    "dates",
    multiple=True,
    help="Day to check, YYYY-MM-DD; repeatable. Defaults to every stored sitemap.",
)
def sitemaps_validate(db_path: Path | None, dates: tuple[str, ...]) -> None:
    """Check stored sitemaps are well-formed urlset documents."""

    _emit_lines(_run(CONTROLLER.validate, ValidateCommand(db_path=db_path, dates=dates)))


@sitemaps.command("cleanup")
@db_path_option
def sitemaps_cleanup(db_path: Path | None) -> None:
    """Delete sitemaps whose day has no eligible content."""

    _emit_lines(_run(CONTROLLER.cleanup, GenerationCommand(db_path=db_path)))


@sitemaps.command("detect")
@db_path_option
def sitemaps_detect(db_path: Path | None) -> None:
    """List missing and stale sitemaps without changing anything."""

    _emit_lines(_run(CONTROLLER.detect, GenerationCommand(db_path=db_path)))


@daily_sitemaps.group()
def content() -> None:
    """Live content commands."""


@content.command("add")
@db_path_option
@click.option("--id", "item_id", required=True, help="Content item id.")
@click.option("--url", required=True, help="Absolute URL of the item.")
@click.option(
    "--published-at",
    type=click.DateTime(formats=_DATETIME_FORMATS),
    required=True,
    help="Publication time (UTC); decides the sitemap day.",
)
@click.option(
    "--modified-at",
    type=click.DateTime(formats=_DATETIME_FORMATS),
    default=None,
    help="Last modification time (UTC); defaults to now.",
)
@click.option("--type", "content_type", default="post", show_default=True, help="Content type.")
@click.option("--status", default="publish", show_default=True, help="Publication status.")
@click.option("--title", default="", help="Item title.")
def content_add(  # noqa: PLR0913
    db_path: Path | None,
    item_id: str,
    url: str,
    published_at: datetime,
    modified_at: datetime | None,
    content_type: str,
    status: str,
    title: str,
) -> None:
    """Insert or replace one live content item."""

    _emit_lines(
        _run(
            CONTROLLER.add_content,
            ContentWriteCommand(
                db_path=db_path,
                item_id=item_id,
                url=url,
                published_at=published_at,
                modified_at=modified_at,
                content_type=content_type.lower(),
                status=status,
                title=title,
            ),
        ),
    )


@content.command("delete")
@db_path_option
@click.option("--id", "item_id", required=True, help="Content item id.")
def content_delete(db_path: Path | None, item_id: str) -> None:
    """Remove one live content item."""

    _emit_lines(
        _run(CONTROLLER.delete_content, ContentDeleteCommand(db_path=db_path, item_id=item_id)),
    )


def _run(handler: Callable[[CommandT], list[str]], command: CommandT) -> list[str]:
    try:
        return handler(command)
    except (ValueError, LookupError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    daily_sitemaps()
