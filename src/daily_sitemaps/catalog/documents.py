"""Durable storage of derived per-day documents."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy import update as sa_update
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from daily_sitemaps.catalog.keys import BucketKey
from daily_sitemaps.catalog.models import BucketDocument, CatalogStats, UpsertAction
from daily_sitemaps.storage.common import to_utc_aware, utc_now
from daily_sitemaps.storage.sqlmodel_models import BucketDocumentRow


class BucketDocumentStore(Protocol):
    """Create, update, delete and enumerate bucket documents."""

    def existing_keys(self) -> set[BucketKey]:
        raise NotImplementedError

    def item_counts(self) -> dict[BucketKey, int]:
        """Stored item count for every existing document."""
        raise NotImplementedError

    def exists(self, key: BucketKey) -> bool:
        raise NotImplementedError

    def upsert(self, key: BucketKey, body: str, item_count: int) -> UpsertAction:
        raise NotImplementedError

    def delete(self, key: BucketKey) -> bool:
        raise NotImplementedError

    def item_count(self, key: BucketKey) -> int | None:
        raise NotImplementedError

    def get(self, key: BucketKey) -> BucketDocument | None:
        raise NotImplementedError


class SQLiteDocumentStore:
    """Document store backed by the ``bucket_documents`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def existing_keys(self) -> set[BucketKey]:
        with Session(self.engine) as session:
            rows = session.exec(select(BucketDocumentRow.bucket_key)).all()
        return {BucketKey.parse(row) for row in rows}

    def item_counts(self) -> dict[BucketKey, int]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(BucketDocumentRow.bucket_key, BucketDocumentRow.item_count),
            ).all()
        return {BucketKey.parse(bucket_key): int(count) for bucket_key, count in rows}

    def exists(self, key: BucketKey) -> bool:
        with Session(self.engine) as session:
            return session.get(BucketDocumentRow, key.value) is not None

    def upsert(self, key: BucketKey, body: str, item_count: int) -> UpsertAction:
        now = utc_now()
        with Session(self.engine) as session:
            row = session.get(BucketDocumentRow, key.value)
            if row is None:
                session.add(
                    BucketDocumentRow(
                        bucket_key=key.value,
                        body=body,
                        item_count=item_count,
                        created_at=now,
                        updated_at=now,
                    ),
                )
                session.commit()
                return UpsertAction.CREATED
            row.body = body
            row.item_count = item_count
            row.updated_at = now
            session.add(row)
            session.commit()
            return UpsertAction.UPDATED

    def delete(self, key: BucketKey) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_delete(BucketDocumentRow).where(
                    col(BucketDocumentRow.bucket_key) == key.value,
                ),
            )
            session.commit()
            return result.rowcount == 1

    def delete_all(self) -> int:
        with Session(self.engine) as session:
            result = session.exec(sa_delete(BucketDocumentRow))
            session.commit()
            return int(result.rowcount or 0)

    def item_count(self, key: BucketKey) -> int | None:
        with Session(self.engine) as session:
            row = session.get(BucketDocumentRow, key.value)
            return row.item_count if row is not None else None

    def set_item_count(self, key: BucketKey, item_count: int) -> bool:
        """Rewrite only the stored count, leaving the body untouched."""

        with Session(self.engine) as session:
            result = session.exec(
                sa_update(BucketDocumentRow)
                .where(col(BucketDocumentRow.bucket_key) == key.value)
                .values(item_count=item_count),
            )
            session.commit()
            return result.rowcount == 1

    def get(self, key: BucketKey) -> BucketDocument | None:
        with Session(self.engine) as session:
            row = session.get(BucketDocumentRow, key.value)
            if row is None:
                return None
            return _to_document(row)

    def list_documents(self, *, limit: int | None = None) -> list[BucketDocument]:
        with Session(self.engine) as session:
            statement = select(BucketDocumentRow).order_by(
                col(BucketDocumentRow.bucket_key).desc(),
            )
            if limit is not None:
                statement = statement.limit(limit)
            rows = session.exec(statement).all()
        return [_to_document(row) for row in rows]

    def stats(self) -> CatalogStats:
        with Session(self.engine) as session:
            document_count, total_items, first_key, last_key = session.exec(
                select(
                    func.count(),
                    func.coalesce(func.sum(BucketDocumentRow.item_count), 0),
                    func.min(BucketDocumentRow.bucket_key),
                    func.max(BucketDocumentRow.bucket_key),
                ),
            ).one()
        return CatalogStats(
            document_count=int(document_count),
            total_items=int(total_items),
            first_key=BucketKey.parse(first_key) if first_key else None,
            last_key=BucketKey.parse(last_key) if last_key else None,
        )


def _to_document(row: BucketDocumentRow) -> BucketDocument:
    return BucketDocument(
        key=BucketKey.parse(row.bucket_key),
        body=row.body,
        item_count=row.item_count,
        created_at=to_utc_aware(row.created_at),
        updated_at=to_utc_aware(row.updated_at),
    )
