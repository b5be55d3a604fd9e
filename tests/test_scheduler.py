from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import allure

from daily_sitemaps.catalog.keys import BucketKey
from daily_sitemaps.generation.models import (
    DATE_JOB_NAME,
    BatchStatus,
    JobStatus,
)

pytestmark = [
    allure.epic("Sitemap Generation"),
    allure.feature("Scheduling, Progress & Halt"),
]


def _days(count: int, start: date = date(2024, 1, 1)) -> list[BucketKey]:
    return [BucketKey(start + timedelta(days=offset)) for offset in range(count)]


def _seed_days(seed_item, keys: list[BucketKey]) -> None:
    for key in keys:
        seed_item(f"item-{key}", key.value)


def _drain(components, clock, *, limit: int = 1000) -> int:
    """Deliver due date jobs the way the worker does; return how many ran."""

    handled = 0
    while handled < limit:
        job = components.jobs.claim_next_due("test-worker")
        if job is None:
            clock.advance(seconds=components.scheduler.interval_seconds or 1)
            job = components.jobs.claim_next_due("test-worker")
            if job is None:
                return handled
        components.scheduler.handle_scheduled_job(job)
        handled += 1
    return handled


def test_scenario_d_fifty_scheduled_days_complete(components, clock, seed_item) -> None:
    keys = _days(50)
    _seed_days(seed_item, keys)
    scheduler = components.scheduler

    summary = scheduler.schedule(keys)

    assert summary.scheduled_count == 50
    assert summary.first_fire_at == clock()
    assert summary.last_fire_at == clock() + timedelta(seconds=49 * scheduler.interval_seconds)
    progress = components.state.get_progress()
    assert (progress.total, progress.remaining, progress.in_progress) == (50, 50, True)

    observed: list[int] = []
    totals: list[int] = []
    while True:
        job = components.jobs.claim_next_due("test-worker")
        if job is None:
            if components.jobs.next_fire_at(DATE_JOB_NAME) is None:
                break
            clock.advance(seconds=scheduler.interval_seconds)
            continue
        scheduler.handle_scheduled_job(job)
        progress = components.state.get_progress()
        observed.append(progress.remaining)
        totals.append(progress.total)

    assert observed == list(range(49, -1, -1))
    assert totals[:-1] == [50] * 49
    progress = components.state.get_progress()
    assert (progress.remaining, progress.in_progress, progress.total) == (0, False, 0)
    assert components.documents.existing_keys() == set(keys)
    assert components.state.get_last_run() == clock()


def test_schedule_never_executes_inline(components, seed_item) -> None:
    keys = _days(3)
    _seed_days(seed_item, keys)

    components.scheduler.schedule(keys)

    assert components.documents.existing_keys() == set()


def test_schedule_skips_keys_with_pending_jobs(components, seed_item) -> None:
    keys = _days(3)
    _seed_days(seed_item, keys)
    components.scheduler.schedule(keys[:2])

    summary = components.scheduler.schedule(keys)

    assert summary.total == 3
    assert summary.scheduled_count == 1
    assert components.jobs.count_jobs(job_name=DATE_JOB_NAME, status=JobStatus.PENDING) == 3


def test_generate_now_runs_batch_and_advances_watermarks(components, clock, seed_item) -> None:
    keys = _days(3)
    _seed_days(seed_item, keys)
    orphan = BucketKey(date(2023, 12, 31))
    components.documents.upsert(orphan, "<urlset/>", 1)
    started = clock()

    summary = components.scheduler.generate_now([*keys, orphan])

    assert summary.status == BatchStatus.COMPLETED
    assert summary.success is True
    assert summary.generated_count == 3
    assert summary.deleted_count == 1
    assert summary.processed_count == 4
    assert components.state.get_last_run() == started
    assert components.state.get_last_update() == started


def test_generate_now_with_no_keys_touches_nothing(components) -> None:
    summary = components.scheduler.generate_now([])

    assert summary.success is True
    assert summary.generated_count == 0
    assert components.state.get_last_run() is None
    assert components.state.get_last_update() is None


def test_generate_now_stops_on_halt_but_advances_last_run(components, seed_item) -> None:
    keys = _days(2)
    _seed_days(seed_item, keys)
    components.state.request_stop()

    summary = components.scheduler.generate_now(keys)

    assert summary.status == BatchStatus.HALTED
    assert summary.success is False
    assert summary.processed_count == 0
    assert components.state.get_last_run() is not None
    assert components.state.get_last_update() is None


def test_days_without_content_do_not_advance_last_update(components) -> None:
    summary = components.scheduler.generate_now(_days(2))

    assert summary.generated_count == 0
    assert components.state.get_last_update() is None
    assert components.state.get_last_run() is not None


def test_halt_stops_future_jobs_without_decrementing(components, clock, seed_item) -> None:
    keys = _days(10)
    _seed_days(seed_item, keys)
    components.scheduler.schedule(keys)
    clock.advance(seconds=60)

    for _ in range(3):
        job = components.jobs.claim_next_due("test-worker")
        assert job is not None
        components.scheduler.handle_scheduled_job(job)

    components.state.request_stop()
    job = components.jobs.claim_next_due("test-worker")
    assert job is not None
    result = components.scheduler.handle_scheduled_job(job)

    assert result.halted is True
    assert components.jobs.claim_next_due("test-worker") is None
    assert components.jobs.count_jobs(job_name=DATE_JOB_NAME, status=JobStatus.PENDING) == 0
    progress = components.state.get_progress()
    assert progress.remaining == 7
    assert progress.halted is True
    assert len(components.documents.existing_keys()) == 3


def test_cancel_unschedules_clears_progress_and_halts(components, seed_item) -> None:
    keys = _days(5)
    _seed_days(seed_item, keys)
    components.scheduler.schedule(keys)

    canceled = components.scheduler.cancel()

    assert canceled == 5
    progress = components.state.get_progress()
    assert (progress.in_progress, progress.total, progress.remaining) == (False, 0, 0)
    assert progress.halted is True
    assert components.jobs.next_fire_at(DATE_JOB_NAME) is None


def test_cancel_during_inflight_job_keeps_watermark(
    service,
    components,
    clock,
    seed_item,
    monkeypatch,
) -> None:
    edited_day = BucketKey(date(2024, 7, 10))
    seed_item("edited", edited_day.value)
    service.run_incremental()
    watermark = components.state.get_last_run()
    assert watermark == clock()

    clock.advance(minutes=5)
    seed_item("edited", edited_day.value)
    other_days = _days(5, start=date(2024, 8, 1))
    _seed_days(seed_item, other_days)
    components.scheduler.schedule([*other_days, edited_day])

    execute = components.executor.execute

    def cancel_then_execute(key, *, force=False):
        components.scheduler.cancel()
        return execute(key, force=force)

    monkeypatch.setattr(components.executor, "execute", cancel_then_execute)
    job = components.jobs.claim_next_due("test-worker")
    assert job is not None
    clock.advance(seconds=75)
    components.scheduler.handle_scheduled_job(job)
    monkeypatch.undo()

    assert components.state.get_last_run() == watermark
    progress = components.state.get_progress()
    assert (progress.remaining, progress.halted) == (0, True)

    resumed = service.run_incremental(resume=True)

    assert resumed.detection is not None
    assert edited_day in resumed.detection.stale
    assert components.documents.get(edited_day) is not None


def test_redelivered_job_decrements_only_once(components, clock, seed_item) -> None:
    keys = _days(2)
    _seed_days(seed_item, keys)
    components.scheduler.schedule(keys)

    job = components.jobs.claim_next_due("test-worker")
    assert job is not None
    components.scheduler.handle_scheduled_job(job)
    components.scheduler.handle_scheduled_job(job)

    assert components.state.get_progress().remaining == 1


def test_record_date_completion_closes_batch(components, clock) -> None:
    components.state.start_batch(2)

    assert components.scheduler.record_date_completion(False) == 1
    assert components.state.get_last_update() is None
    assert components.state.get_last_run() is None
    clock.advance(minutes=1)
    assert components.scheduler.record_date_completion(True) == 0

    assert components.state.get_last_update() == clock()
    assert components.state.get_last_run() == clock()
    assert components.state.get_progress().in_progress is False


def test_completion_without_open_batch_leaves_watermark(components, clock) -> None:
    assert components.scheduler.record_date_completion(True) is None

    assert components.state.get_last_run() is None
    assert components.state.get_last_update() == clock()


def test_last_staggered_job_runs_cleanup(components, clock, seed_item) -> None:
    keys = _days(2)
    _seed_days(seed_item, keys)
    orphan = BucketKey(date(2020, 1, 1))
    components.documents.upsert(orphan, "<urlset/>", 4)
    components.scheduler.schedule(keys)

    assert _drain(components, clock) == 2

    assert components.documents.existing_keys() == set(keys)


def test_malformed_job_key_still_counts_toward_batch(components, clock) -> None:
    components.state.start_batch(1)
    components.jobs.schedule_once(clock(), DATE_JOB_NAME, "not-a-date")
    job = components.jobs.claim_next_due("test-worker")
    assert job is not None

    result = components.scheduler.handle_scheduled_job(job)

    assert result.succeeded is False
    assert "Invalid bucket key" in (result.error_summary or "")
    assert components.state.get_progress().in_progress is False


def test_fire_times_are_staggered_by_interval(components, seed_item) -> None:
    keys = _days(3)
    _seed_days(seed_item, keys)
    components.scheduler.interval_seconds = 7

    components.scheduler.schedule(keys)

    jobs = components.jobs.list_jobs(job_name=DATE_JOB_NAME)
    base = jobs[0].fire_at
    assert [job.fire_at - base for job in jobs] == [
        timedelta(0),
        timedelta(seconds=7),
        timedelta(seconds=14),
    ]
    assert base == datetime(2026, 10, 19, 12, 0, tzinfo=UTC)
