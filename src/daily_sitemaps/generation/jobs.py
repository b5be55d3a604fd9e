"""Persistent one-shot job queue used as the timer substrate."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from daily_sitemaps.generation.models import JobStatus, ScheduledJobView
from daily_sitemaps.storage.common import (
    optional_utc_aware,
    to_db_datetime,
    to_utc_aware,
    utc_now,
)
from daily_sitemaps.storage.sqlmodel_models import ScheduledJobRow

logger = logging.getLogger(__name__)


class JobQueue:
    """Queue persistence facade backed by the ``scheduled_jobs`` table.

    Jobs move ``pending -> running -> succeeded|failed``; pending jobs can be
    ``canceled``. Every transition is a conditional ``UPDATE`` on the expected
    previous status, so a transition that lost a race reports ``False``.
    """

    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.engine = engine
        self.clock = clock

    def schedule_once(self, fire_at: datetime, job_name: str, job_key: str) -> ScheduledJobView:
        """Enqueue one job due at ``fire_at``."""

        now = self.clock()
        with Session(self.engine) as session:
            row = ScheduledJobRow(
                job_id=str(uuid4()),
                job_name=job_name,
                job_key=job_key,
                status=JobStatus.PENDING.value,
                fire_at=to_db_datetime(fire_at),
                attempt=0,
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def has_pending(self, job_name: str, job_key: str) -> bool:
        with Session(self.engine) as session:
            row = session.exec(
                select(ScheduledJobRow.job_id)
                .where(
                    ScheduledJobRow.job_name == job_name,
                    ScheduledJobRow.job_key == job_key,
                    ScheduledJobRow.status == JobStatus.PENDING.value,
                )
                .limit(1),
            ).first()
        return row is not None

    def cancel_all(self, job_name: str) -> int:
        """Cancel every pending job of one name; running jobs are left alone."""

        now = to_db_datetime(self.clock())
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ScheduledJobRow)
                .where(
                    col(ScheduledJobRow.job_name) == job_name,
                    col(ScheduledJobRow.status) == JobStatus.PENDING.value,
                )
                .values(
                    status=JobStatus.CANCELED.value,
                    finished_at=now,
                    updated_at=now,
                ),
            )
            session.commit()
            canceled = int(result.rowcount or 0)
        if canceled:
            logger.info("Canceled %d pending %s jobs", canceled, job_name)
        return canceled

    def claim_next_due(
        self,
        worker_id: str,
        now: datetime | None = None,
    ) -> ScheduledJobView | None:
        """Atomically claim the earliest pending job whose fire time has passed."""

        while True:
            moment = to_db_datetime(now or self.clock())
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(ScheduledJobRow)
                    .where(
                        ScheduledJobRow.status == JobStatus.PENDING.value,
                        col(ScheduledJobRow.fire_at) <= moment,
                    )
                    .order_by(
                        col(ScheduledJobRow.fire_at).asc(),
                        col(ScheduledJobRow.created_at).asc(),
                    )
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(ScheduledJobRow)
                    .where(
                        col(ScheduledJobRow.job_id) == candidate.job_id,
                        col(ScheduledJobRow.status) == JobStatus.PENDING.value,
                    )
                    .values(
                        status=JobStatus.RUNNING.value,
                        attempt=candidate.attempt + 1,
                        worker_id=worker_id,
                        started_at=moment,
                        finished_at=None,
                        error_summary=None,
                        updated_at=moment,
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue

                claimed = session.exec(
                    select(ScheduledJobRow).where(ScheduledJobRow.job_id == candidate.job_id),
                ).one()
                session.commit()
                return _to_job_view(claimed)

    def finish_job(self, job_id: str, *, succeeded: bool, error: str | None = None) -> bool:
        """Move a running job to its terminal status.

        Returns ``False`` when the job is no longer running, e.g. a redelivered
        copy already finished it.
        """

        now = to_db_datetime(self.clock())
        status = JobStatus.SUCCEEDED if succeeded else JobStatus.FAILED
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ScheduledJobRow)
                .where(
                    col(ScheduledJobRow.job_id) == job_id,
                    col(ScheduledJobRow.status) == JobStatus.RUNNING.value,
                )
                .values(
                    status=status.value,
                    error_summary=error,
                    finished_at=now,
                    updated_at=now,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def recover_stale_jobs(self, stale_after: timedelta, now: datetime | None = None) -> int:
        """Return jobs left running past ``stale_after`` to pending for redelivery."""

        moment = now or self.clock()
        cutoff = to_db_datetime(moment - stale_after)
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ScheduledJobRow)
                .where(
                    col(ScheduledJobRow.status) == JobStatus.RUNNING.value,
                    col(ScheduledJobRow.started_at) < cutoff,
                )
                .values(
                    status=JobStatus.PENDING.value,
                    worker_id=None,
                    started_at=None,
                    updated_at=to_db_datetime(moment),
                ),
            )
            session.commit()
            recovered = int(result.rowcount or 0)
        if recovered:
            logger.warning("Recovered %d stale running jobs", recovered)
        return recovered

    def next_fire_at(self, job_name: str) -> datetime | None:
        with Session(self.engine) as session:
            value = session.exec(
                select(func.min(ScheduledJobRow.fire_at)).where(
                    ScheduledJobRow.job_name == job_name,
                    ScheduledJobRow.status == JobStatus.PENDING.value,
                ),
            ).one()
        return optional_utc_aware(value)

    def count_jobs(self, *, job_name: str | None = None, status: JobStatus | None = None) -> int:
        with Session(self.engine) as session:
            statement = select(func.count()).select_from(ScheduledJobRow)
            if job_name is not None:
                statement = statement.where(ScheduledJobRow.job_name == job_name)
            if status is not None:
                statement = statement.where(ScheduledJobRow.status == status.value)
            return int(session.exec(statement).one())

    def list_jobs(
        self,
        *,
        job_name: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
    ) -> list[ScheduledJobView]:
        with Session(self.engine) as session:
            statement = select(ScheduledJobRow).order_by(
                col(ScheduledJobRow.fire_at).asc(),
                col(ScheduledJobRow.created_at).asc(),
            )
            if job_name is not None:
                statement = statement.where(ScheduledJobRow.job_name == job_name)
            if status is not None:
                statement = statement.where(ScheduledJobRow.status == status.value)
            rows = session.exec(statement.limit(limit)).all()
        return [_to_job_view(row) for row in rows]

    def get_job(self, job_id: str) -> ScheduledJobView | None:
        with Session(self.engine) as session:
            row = session.get(ScheduledJobRow, job_id)
            return _to_job_view(row) if row is not None else None


def _to_job_view(row: ScheduledJobRow) -> ScheduledJobView:
    return ScheduledJobView(
        job_id=row.job_id,
        job_name=row.job_name,
        job_key=row.job_key,
        status=JobStatus(row.status),
        fire_at=to_utc_aware(row.fire_at),
        attempt=row.attempt,
        worker_id=row.worker_id,
        started_at=optional_utc_aware(row.started_at),
        finished_at=optional_utc_aware(row.finished_at),
        error_summary=row.error_summary,
        created_at=to_utc_aware(row.created_at),
        updated_at=to_utc_aware(row.updated_at),
    )
