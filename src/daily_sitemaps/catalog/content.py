"""Read access to live content grouped by publication day."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from daily_sitemaps.catalog.keys import BucketKey
from daily_sitemaps.catalog.models import ContentEntry, ContentItemWrite
from daily_sitemaps.storage.common import to_db_datetime, to_utc_aware, utc_now
from daily_sitemaps.storage.sqlmodel_models import ContentItem

# Keeps IN (...) lists well below SQLite's bound-parameter limit.
_IN_CHUNK_SIZE = 500


class ContentQuery(Protocol):
    """Read-only questions the generator asks about live content."""

    @property
    def enabled_content_types(self) -> tuple[str, ...]:
        """Content types that contribute to documents; empty disables generation."""
        raise NotImplementedError

    def eligible_keys(self) -> set[BucketKey]:
        """Every bucket holding at least one eligible item."""
        raise NotImplementedError

    def eligible_counts(self) -> dict[BucketKey, int]:
        """Eligible item count per content-bearing bucket."""
        raise NotImplementedError

    def eligible_count(self, key: BucketKey) -> int:
        raise NotImplementedError

    def eligible_items(self, key: BucketKey) -> list[ContentEntry]:
        raise NotImplementedError

    def modified_since(self, keys: Iterable[BucketKey], timestamp: datetime) -> set[BucketKey]:
        """Subset of ``keys`` with eligible items modified after ``timestamp``."""
        raise NotImplementedError


class SQLiteContentStore:
    """Content store backed by the ``content_items`` table."""

    def __init__(
        self,
        engine: Engine,
        *,
        content_types: tuple[str, ...] = ("post",),
        eligible_status: str = "publish",
    ) -> None:
        self.engine = engine
        self._content_types = tuple(content_types)
        self.eligible_status = eligible_status

    @property
    def enabled_content_types(self) -> tuple[str, ...]:
        return self._content_types

    def eligible_keys(self) -> set[BucketKey]:
        if not self._content_types:
            return set()
        with Session(self.engine) as session:
            rows = session.exec(
                select(ContentItem.bucket_key).where(*self._eligibility()).distinct(),
            ).all()
        return {BucketKey.parse(row) for row in rows}

    def eligible_counts(self) -> dict[BucketKey, int]:
        if not self._content_types:
            return {}
        with Session(self.engine) as session:
            rows = session.exec(
                select(ContentItem.bucket_key, func.count())
                .where(*self._eligibility())
                .group_by(col(ContentItem.bucket_key)),
            ).all()
        return {BucketKey.parse(bucket_key): int(count) for bucket_key, count in rows}

    def eligible_count(self, key: BucketKey) -> int:
        if not self._content_types:
            return 0
        with Session(self.engine) as session:
            count = session.exec(
                select(func.count())
                .select_from(ContentItem)
                .where(ContentItem.bucket_key == key.value, *self._eligibility()),
            ).one()
        return int(count)

    def eligible_items(self, key: BucketKey) -> list[ContentEntry]:
        if not self._content_types:
            return []
        with Session(self.engine) as session:
            rows = session.exec(
                select(ContentItem)
                .where(ContentItem.bucket_key == key.value, *self._eligibility())
                .order_by(col(ContentItem.published_at).asc(), col(ContentItem.item_id).asc()),
            ).all()
        return [
            ContentEntry(
                item_id=row.item_id,
                url=row.url,
                title=row.title,
                content_type=row.content_type,
                published_at=to_utc_aware(row.published_at),
                modified_at=to_utc_aware(row.modified_at),
            )
            for row in rows
        ]

    def modified_since(self, keys: Iterable[BucketKey], timestamp: datetime) -> set[BucketKey]:
        if not self._content_types:
            return set()
        threshold = to_db_datetime(timestamp)
        modified: set[BucketKey] = set()
        with Session(self.engine) as session:
            for chunk in _chunks(sorted(key.value for key in keys)):
                rows = session.exec(
                    select(ContentItem.bucket_key)
                    .where(
                        col(ContentItem.bucket_key).in_(chunk),
                        col(ContentItem.modified_at) > threshold,
                        *self._eligibility(),
                    )
                    .distinct(),
                ).all()
                modified.update(BucketKey.parse(row) for row in rows)
        return modified

    def upsert_item(self, payload: ContentItemWrite) -> None:
        """Insert or replace one content item; the bucket follows ``published_at``."""

        modified_at = payload.modified_at or utc_now()
        with Session(self.engine) as session:
            row = session.get(ContentItem, payload.item_id)
            if row is None:
                row = ContentItem(
                    item_id=payload.item_id,
                    content_type=payload.content_type,
                    status=payload.status,
                    url=payload.url,
                    title=payload.title,
                    bucket_key=BucketKey.from_datetime(payload.published_at).value,
                    published_at=to_db_datetime(payload.published_at),
                    modified_at=to_db_datetime(modified_at),
                )
            else:
                row.content_type = payload.content_type
                row.status = payload.status
                row.url = payload.url
                row.title = payload.title
                row.bucket_key = BucketKey.from_datetime(payload.published_at).value
                row.published_at = to_db_datetime(payload.published_at)
                row.modified_at = to_db_datetime(modified_at)
            session.add(row)
            session.commit()

    def delete_item(self, item_id: str) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(ContentItem).where(col(ContentItem.item_id) == item_id),
            )
            session.commit()
            return result.rowcount == 1

    def _eligibility(self) -> tuple[object, ...]:
        return (
            col(ContentItem.content_type).in_(self._content_types),
            ContentItem.status == self.eligible_status,
        )


def _chunks(values: list[str]) -> Iterator[list[str]]:
    for start in range(0, len(values), _IN_CHUNK_SIZE):
        yield values[start : start + _IN_CHUNK_SIZE]
