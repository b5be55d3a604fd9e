"""Durable process state of sitemap generation.

Every accessor writes one logical field (or the staggered-run field group) of
the singleton ``generation_state`` row with a single SQL ``UPDATE``, so
concurrent writers never clobber each other's fields with a stale
read-modify-write.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from sqlalchemy import update as sa_update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from daily_sitemaps.generation.models import GenerationProgress, GenerationTimestamps
from daily_sitemaps.storage.common import optional_utc_aware, to_db_datetime, utc_now
from daily_sitemaps.storage.sqlmodel_models import STATE_ROW_ID, GenerationStateRow


class GenerationState:
    """Narrow-write facade over the singleton generation state row."""

    def __init__(self, engine: Engine, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.engine = engine
        self.clock = clock

    def mark_in_progress(self) -> None:
        self._update(in_progress=True)

    def mark_complete(self) -> None:
        self._update(in_progress=False)

    def start_batch(self, total: int) -> None:
        """Begin a staggered run of ``total`` units."""

        if total < 0:
            raise ValueError(f"Batch total must be >= 0, got {total}.")
        self._update(in_progress=True, total=total, remaining=total)

    def decrement_remaining(self) -> int | None:
        """Count one finished unit and return what is left.

        Returns ``None`` when the counter was already zero (a canceled or
        closed batch), so callers only close a batch on a real ``1 -> 0`` step.
        """

        with Session(self.engine) as session:
            self._ensure_row(session)
            result = session.exec(
                sa_update(GenerationStateRow)
                .where(
                    col(GenerationStateRow.id) == STATE_ROW_ID,
                    col(GenerationStateRow.remaining) > 0,
                )
                .values(remaining=GenerationStateRow.remaining - 1),
            )
            if result.rowcount != 1:
                session.rollback()
                return None
            remaining = session.exec(
                select(GenerationStateRow.remaining).where(
                    GenerationStateRow.id == STATE_ROW_ID,
                ),
            ).one()
            session.commit()
        return int(remaining)

    def clear_batch(self) -> None:
        self._update(in_progress=False, total=0, remaining=0)

    def is_stop_requested(self) -> bool:
        row = self._read()
        return bool(row is not None and row.halt_requested)

    def request_stop(self) -> None:
        self._update(halt_requested=True)

    def clear_stop_request(self) -> None:
        self._update(halt_requested=False)

    def touch_last_check(self, at: datetime | None = None) -> datetime:
        return self._touch("last_check", at)

    def touch_last_update(self, at: datetime | None = None) -> datetime:
        return self._touch("last_update", at)

    def touch_last_run(self, at: datetime | None = None) -> datetime:
        return self._touch("last_run", at)

    def get_last_check(self) -> datetime | None:
        return self.timestamps().last_check

    def get_last_update(self) -> datetime | None:
        return self.timestamps().last_update

    def get_last_run(self) -> datetime | None:
        return self.timestamps().last_run

    def timestamps(self) -> GenerationTimestamps:
        row = self._read()
        if row is None:
            return GenerationTimestamps(last_check=None, last_update=None, last_run=None)
        return GenerationTimestamps(
            last_check=optional_utc_aware(row.last_check),
            last_update=optional_utc_aware(row.last_update),
            last_run=optional_utc_aware(row.last_run),
        )

    def is_in_progress(self) -> bool:
        row = self._read()
        return bool(row is not None and row.in_progress)

    def get_progress(self) -> GenerationProgress:
        """Read every progress field from one row in one statement."""

        row = self._read()
        if row is None:
            return GenerationProgress(in_progress=False, total=0, remaining=0, halted=False)
        return GenerationProgress(
            in_progress=row.in_progress,
            total=row.total,
            remaining=row.remaining,
            halted=row.halt_requested,
        )

    def clear_all_state(self) -> None:
        """Operator reset: forget progress, halt flag and all watermarks."""

        self._update(
            in_progress=False,
            total=0,
            remaining=0,
            halt_requested=False,
            last_check=None,
            last_update=None,
            last_run=None,
        )

    def _touch(self, field_name: str, at: datetime | None) -> datetime:
        moment = at or self.clock()
        self._update(**{field_name: to_db_datetime(moment)})
        return moment

    def _update(self, **values: object) -> None:
        with Session(self.engine) as session:
            self._ensure_row(session)
            session.exec(
                sa_update(GenerationStateRow)
                .where(col(GenerationStateRow.id) == STATE_ROW_ID)
                .values(**values),
            )
            session.commit()

    def _read(self) -> GenerationStateRow | None:
        with Session(self.engine) as session:
            return session.get(GenerationStateRow, STATE_ROW_ID)

    @staticmethod
    def _ensure_row(session: Session) -> None:
        session.exec(
            sqlite_insert(GenerationStateRow)
            .values(id=STATE_ROW_ID)
            .on_conflict_do_nothing(index_elements=["id"]),
        )
