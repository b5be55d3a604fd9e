"""Periodic incremental update trigger backed by a recurring queue job."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlmodel import Session, col

from daily_sitemaps.config import DEFAULT_FREQUENCY, validate_frequency
from daily_sitemaps.generation.jobs import JobQueue
from daily_sitemaps.generation.models import (
    DATE_JOB_NAME,
    INCREMENTAL_JOB_NAME,
    RECURRING_JOB_KEY,
)
from daily_sitemaps.generation.state import GenerationState
from daily_sitemaps.storage.common import to_db_datetime, utc_now
from daily_sitemaps.storage.sqlmodel_models import STATE_ROW_ID, UpdateTriggerRow

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TriggerStatus:
    """Operator view of the periodic update."""

    enabled: bool
    frequency: str
    next_run: datetime | None
    generating: bool
    halted: bool
    last_run: datetime | None


class UpdateTrigger:
    """Enables, disables and reschedules the recurring incremental update."""

    def __init__(
        self,
        *,
        engine: Engine,
        jobs: JobQueue,
        state: GenerationState,
        default_frequency: str = DEFAULT_FREQUENCY,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.jobs = jobs
        self.state = state
        self.default_frequency = default_frequency
        self.clock = clock

    def is_enabled(self) -> bool:
        row = self._read()
        return bool(row is not None and row.enabled)

    def frequency(self) -> str:
        row = self._read()
        if row is None or not row.frequency:
            return self.default_frequency
        return row.frequency

    def interval(self) -> timedelta:
        return timedelta(seconds=validate_frequency(self.frequency()))

    def enable(self, frequency: str | None = None) -> TriggerStatus:
        """Turn the periodic update on; the first run is due immediately."""

        chosen = frequency or self.frequency()
        validate_frequency(chosen)
        self._write(enabled=True, frequency=chosen)
        self.jobs.cancel_all(INCREMENTAL_JOB_NAME)
        self.jobs.schedule_once(self.clock(), INCREMENTAL_JOB_NAME, RECURRING_JOB_KEY)
        logger.info("Periodic sitemap update enabled (%s)", chosen)
        return self.status()

    def disable(self) -> TriggerStatus:
        """Turn the periodic update off and forget all generation state."""

        self._write(enabled=False)
        self.jobs.cancel_all(INCREMENTAL_JOB_NAME)
        self.jobs.cancel_all(DATE_JOB_NAME)
        self.state.clear_all_state()
        logger.info("Periodic sitemap update disabled")
        return self.status()

    def reset(self) -> TriggerStatus:
        """Drop the pending recurring job and, when enabled, schedule a fresh one."""

        self.jobs.cancel_all(INCREMENTAL_JOB_NAME)
        if self.is_enabled():
            self.jobs.schedule_once(self.clock(), INCREMENTAL_JOB_NAME, RECURRING_JOB_KEY)
        return self.status()

    def set_frequency(self, frequency: str) -> TriggerStatus:
        validate_frequency(frequency)
        self._write(frequency=frequency)
        if self.is_enabled():
            self.jobs.cancel_all(INCREMENTAL_JOB_NAME)
            self.jobs.schedule_once(
                self.clock() + self.interval(),
                INCREMENTAL_JOB_NAME,
                RECURRING_JOB_KEY,
            )
        logger.info("Periodic sitemap update frequency set to %s", frequency)
        return self.status()

    def schedule_next(self) -> datetime | None:
        """Queue the next recurring run while the trigger stays enabled."""

        if not self.is_enabled():
            return None
        if self.jobs.has_pending(INCREMENTAL_JOB_NAME, RECURRING_JOB_KEY):
            return self.jobs.next_fire_at(INCREMENTAL_JOB_NAME)
        fire_at = self.clock() + self.interval()
        self.jobs.schedule_once(fire_at, INCREMENTAL_JOB_NAME, RECURRING_JOB_KEY)
        return fire_at

    def status(self) -> TriggerStatus:
        progress = self.state.get_progress()
        return TriggerStatus(
            enabled=self.is_enabled(),
            frequency=self.frequency(),
            next_run=self.jobs.next_fire_at(INCREMENTAL_JOB_NAME),
            generating=progress.in_progress,
            halted=progress.halted,
            last_run=self.state.get_last_run(),
        )

    def _read(self) -> UpdateTriggerRow | None:
        with Session(self.engine) as session:
            return session.get(UpdateTriggerRow, STATE_ROW_ID)

    def _write(self, **values: object) -> None:
        with Session(self.engine) as session:
            session.exec(
                sqlite_insert(UpdateTriggerRow)
                .values(id=STATE_ROW_ID)
                .on_conflict_do_nothing(index_elements=["id"]),
            )
            session.exec(
                sa_update(UpdateTriggerRow)
                .where(col(UpdateTriggerRow.id) == STATE_ROW_ID)
                .values(updated_at=to_db_datetime(self.clock()), **values),
            )
            session.commit()
