from __future__ import annotations

from pathlib import Path

import allure
import pytest

from daily_sitemaps.config import (
    FREQUENCY_SECONDS,
    GenerationSettings,
    Settings,
    TriggerSettings,
    WorkerSettings,
    validate_frequency,
)

pytestmark = [
    allure.epic("Sitemap Catalog"),
    allure.feature("Configuration"),
]


def test_defaults_without_environment(monkeypatch) -> None:
    for name in (
        "DAILY_SITEMAPS_DB_PATH",
        "DAILY_SITEMAPS_CONTENT_TYPES",
        "DAILY_SITEMAPS_STAGGER_INTERVAL_SECONDS",
        "DAILY_SITEMAPS_UPDATE_FREQUENCY",
        "DAILY_SITEMAPS_WORKER_ID",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.db_path == Path(".daily_sitemaps.db")
    assert settings.content.enabled_types == ("post",)
    assert settings.content.eligible_status == "publish"
    assert settings.generation.stagger_interval_seconds == 5
    assert settings.generation.direct_batch_limit == 25
    assert settings.trigger.frequency == "15min"
    assert settings.worker.worker_id
    settings.validate()


def test_from_env_reads_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("DAILY_SITEMAPS_CONTENT_TYPES", "Post, page,post,,")
    monkeypatch.setenv("DAILY_SITEMAPS_STAGGER_INTERVAL_SECONDS", "2")
    monkeypatch.setenv("DAILY_SITEMAPS_DIRECT_BATCH_LIMIT", "0")
    monkeypatch.setenv("DAILY_SITEMAPS_UPDATE_FREQUENCY", " Hourly ")
    monkeypatch.setenv("DAILY_SITEMAPS_WORKER_ID", "worker-a")

    settings = Settings.from_env(db_path=tmp_path / "x.db")

    assert settings.db_path == tmp_path / "x.db"
    assert settings.content.enabled_types == ("post", "page")
    assert settings.generation.stagger_interval_seconds == 2
    assert settings.generation.direct_batch_limit == 0
    assert settings.trigger.frequency == "hourly"
    assert settings.worker.worker_id == "worker-a"


def test_empty_content_types_variable_disables_generation(monkeypatch) -> None:
    monkeypatch.setenv("DAILY_SITEMAPS_CONTENT_TYPES", "")

    assert Settings.from_env().content.enabled_types == ()


def test_validate_rejects_negative_interval() -> None:
    settings = Settings(generation=GenerationSettings(stagger_interval_seconds=-1))

    with pytest.raises(ValueError, match="STAGGER_INTERVAL_SECONDS"):
        settings.validate()


def test_validate_rejects_non_positive_stale_window() -> None:
    settings = Settings(worker=WorkerSettings(stale_job_seconds=0))

    with pytest.raises(ValueError, match="STALE_JOB_SECONDS"):
        settings.validate()


def test_validate_rejects_unknown_frequency() -> None:
    settings = Settings(trigger=TriggerSettings(frequency="weekly"))

    with pytest.raises(ValueError, match="Invalid update frequency"):
        settings.validate()


def test_frequency_table() -> None:
    assert list(FREQUENCY_SECONDS) == [
        "5min",
        "10min",
        "15min",
        "30min",
        "hourly",
        "2hourly",
        "3hourly",
    ]
    assert validate_frequency("3hourly") == 10_800
