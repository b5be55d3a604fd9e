from __future__ import annotations

from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from daily_sitemaps import __version__
from daily_sitemaps.main import daily_sitemaps

pytestmark = [
    allure.epic("Sitemap Catalog"),
    allure.feature("CLI Operations"),
]


@pytest.fixture()
def cli_env(monkeypatch) -> None:
    monkeypatch.setenv("DAILY_SITEMAPS_STAGGER_INTERVAL_SECONDS", "0")
    monkeypatch.setenv("DAILY_SITEMAPS_WORKER_POLL_SECONDS", "0")
    monkeypatch.delenv("DAILY_SITEMAPS_CONTENT_TYPES", raising=False)
    monkeypatch.delenv("DAILY_SITEMAPS_UPDATE_FREQUENCY", raising=False)


def _invoke(runner: CliRunner, *args: str):
    result = runner.invoke(daily_sitemaps, list(args))
    assert result.exit_code == 0, result.output
    return result


def _add(runner: CliRunner, db_path: Path, item_id: str, published_at: str) -> None:
    _invoke(
        runner,
        "content",
        "add",
        "--db-path",
        str(db_path),
        "--id",
        item_id,
        "--url",
        f"https://example.com/{item_id}",
        "--published-at",
        published_at,
    )


def test_version_option() -> None:
    result = CliRunner().invoke(daily_sitemaps, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


@pytest.mark.usefixtures("cli_env")
def test_incremental_generation_end_to_end(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _add(runner, db_path, "a", "2024-07-10 08:00:00")
    _add(runner, db_path, "b", "2024-07-11")

    detect = _invoke(runner, "sitemaps", "detect", "--db-path", str(db_path))
    assert "2 missing sitemaps" in detect.output

    run = _invoke(runner, "generate", "incremental", "--db-path", str(db_path))
    assert "Run outcome: completed" in run.output
    assert "generated=2" in run.output

    listing = _invoke(runner, "sitemaps", "list", "--db-path", str(db_path))
    assert "2024-07-11 items=1" in listing.output
    assert "2024-07-10 items=1" in listing.output

    body = _invoke(runner, "sitemaps", "get", "--db-path", str(db_path), "--date", "2024-07-10")
    assert "<loc>https://example.com/a</loc>" in body.output

    stats = _invoke(runner, "sitemaps", "stats", "--db-path", str(db_path))
    assert "Sitemaps: 2" in stats.output
    assert "Date range: 2024-07-10 .. 2024-07-11" in stats.output


@pytest.mark.usefixtures("cli_env")
def test_full_generation_through_worker(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _add(runner, db_path, "a", "2024-07-10")
    _add(runner, db_path, "b", "2024-07-12")

    scheduled = _invoke(runner, "generate", "full", "--db-path", str(db_path))
    assert "Run outcome: scheduled" in scheduled.output
    assert "Scheduled 2 of 2 dates" in scheduled.output

    progress = _invoke(runner, "progress", "--db-path", str(db_path))
    assert "in_progress=yes total=2 remaining=2 completed=0" in progress.output

    refused = _invoke(runner, "generate", "full", "--db-path", str(db_path))
    assert "Run outcome: already_running" in refused.output

    worker = _invoke(runner, "worker", "--db-path", str(db_path), "--max-idle-polls", "1")
    assert "processed=2 succeeded=2" in worker.output

    done = _invoke(runner, "progress", "--db-path", str(db_path))
    assert "in_progress=no total=0 remaining=0" in done.output


@pytest.mark.usefixtures("cli_env")
def test_cancel_then_resume(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _add(runner, db_path, "a", "2024-07-10")

    _invoke(runner, "generate", "full", "--db-path", str(db_path))
    canceled = _invoke(runner, "cancel", "--db-path", str(db_path))
    assert "canceled_jobs=1" in canceled.output

    skipped = _invoke(runner, "generate", "incremental", "--db-path", str(db_path))
    assert "Run outcome: halted" in skipped.output

    resumed = _invoke(runner, "generate", "incremental", "--resume", "--db-path", str(db_path))
    assert "Run outcome: completed" in resumed.output


@pytest.mark.usefixtures("cli_env")
def test_generate_single_date_and_force(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _add(runner, db_path, "a", "2024-07-10")

    created = _invoke(runner, "generate", "date", "--db-path", str(db_path), "--date", "2024-07-10")
    assert "2024-07-10: created items=1" in created.output

    refused = _invoke(runner, "generate", "date", "--db-path", str(db_path), "--date", "2024-07-10")
    assert "error=already_exists" in refused.output

    forced = _invoke(
        runner,
        "generate",
        "date",
        "--db-path",
        str(db_path),
        "--date",
        "2024-07-10",
        "--force",
    )
    assert "2024-07-10: updated items=1" in forced.output


@pytest.mark.usefixtures("cli_env")
def test_invalid_date_is_a_usage_error(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        daily_sitemaps,
        ["generate", "date", "--db-path", str(tmp_path / "cli.db"), "--date", "2024-02-30"],
    )

    assert result.exit_code != 0
    assert "Invalid bucket key" in result.output


@pytest.mark.usefixtures("cli_env")
def test_cron_lifecycle(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"

    status = _invoke(runner, "cron", "status", "--db-path", str(db_path))
    assert "enabled=no frequency=15min" in status.output

    enabled = _invoke(runner, "cron", "enable", "--db-path", str(db_path), "--frequency", "hourly")
    assert "enabled=yes frequency=hourly" in enabled.output

    changed = _invoke(runner, "cron", "frequency", "--db-path", str(db_path), "30min")
    assert "frequency=30min" in changed.output

    disabled = _invoke(runner, "cron", "disable", "--db-path", str(db_path))
    assert "enabled=no" in disabled.output
    assert "Next run: never" in disabled.output


@pytest.mark.usefixtures("cli_env")
def test_unknown_frequency_is_rejected_by_cli(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        daily_sitemaps,
        ["cron", "frequency", "--db-path", str(tmp_path / "cli.db"), "weekly"],
    )

    assert result.exit_code != 0


@pytest.mark.usefixtures("cli_env")
def test_cleanup_recount_and_delete(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _add(runner, db_path, "a", "2024-07-10")
    _add(runner, db_path, "b", "2024-07-11")
    _invoke(runner, "generate", "incremental", "--db-path", str(db_path))
    _invoke(runner, "content", "delete", "--db-path", str(db_path), "--id", "b")

    cleaned = _invoke(runner, "sitemaps", "cleanup", "--db-path", str(db_path))
    assert "Orphaned sitemaps deleted: 1" in cleaned.output

    recount = _invoke(runner, "sitemaps", "recount", "--full", "--db-path", str(db_path))
    assert "Recount (full): sitemaps=1 items=1" in recount.output

    deleted = _invoke(
        runner,
        "sitemaps",
        "delete",
        "--db-path",
        str(db_path),
        "--date",
        "2024-07-10",
    )
    assert "Deleted sitemap for 2024-07-10." in deleted.output

    missing = CliRunner().invoke(
        daily_sitemaps,
        ["sitemaps", "get", "--db-path", str(db_path), "--date", "2024-07-10"],
    )
    assert missing.exit_code != 0
    assert "No sitemap stored" in missing.output


@pytest.mark.usefixtures("cli_env")
def test_reset_clears_watermarks(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"
    _add(runner, db_path, "a", "2024-07-10")
    _invoke(runner, "generate", "incremental", "--db-path", str(db_path))

    _invoke(runner, "reset", "--db-path", str(db_path))
    progress = _invoke(runner, "progress", "--db-path", str(db_path))

    assert "Last run: never" in progress.output


@pytest.mark.usefixtures("cli_env")
def test_validate_stored_sitemaps(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "cli.db"

    empty = _invoke(runner, "sitemaps", "validate", "--db-path", str(db_path))
    assert "No sitemaps found to validate." in empty.output

    _add(runner, db_path, "a", "2024-07-10")
    _invoke(runner, "generate", "incremental", "--db-path", str(db_path))

    checked = _invoke(
        runner,
        "sitemaps",
        "validate",
        "--db-path",
        str(db_path),
        "--date",
        "2024-07-10",
        "--date",
        "2024-07-11",
    )
    assert "Validated 2 sitemaps: 1 valid, 1 invalid with 1 total errors" in checked.output
    assert "2024-07-11: Sitemap not found" in checked.output
