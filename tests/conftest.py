"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.engine import Engine

from daily_sitemaps.catalog.content import SQLiteContentStore
from daily_sitemaps.catalog.documents import SQLiteDocumentStore
from daily_sitemaps.catalog.models import ContentItemWrite
from daily_sitemaps.config import Settings
from daily_sitemaps.generation.services import (
    GenerationComponents,
    GenerationService,
    build_components,
)
from daily_sitemaps.storage.common import open_catalog_engine


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 19, 12, 0, tzinfo=UTC))


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "catalog.db"


@pytest.fixture()
def engine(db_path: Path) -> Iterator[Engine]:
    engine = open_catalog_engine(db_path=db_path)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def settings(db_path: Path) -> Settings:
    return Settings(db_path=db_path)


@pytest.fixture()
def components(engine: Engine, settings: Settings, clock: FakeClock) -> GenerationComponents:
    return build_components(engine, settings, clock=clock)


@pytest.fixture()
def service(components: GenerationComponents, settings: Settings) -> GenerationService:
    return GenerationService(
        components,
        direct_batch_limit=settings.generation.direct_batch_limit,
    )


@pytest.fixture()
def content_store(components: GenerationComponents) -> SQLiteContentStore:
    assert isinstance(components.content, SQLiteContentStore)
    return components.content


@pytest.fixture()
def document_store(components: GenerationComponents) -> SQLiteDocumentStore:
    assert isinstance(components.documents, SQLiteDocumentStore)
    return components.documents


SeedItem = Callable[..., ContentItemWrite]


@pytest.fixture()
def seed_item(content_store: SQLiteContentStore, clock: FakeClock) -> SeedItem:
    """Write one content item published on ``day`` (``YYYY-MM-DD``)."""

    def _seed(  # noqa: PLR0913
        item_id: str,
        day: str,
        *,
        hour: int = 9,
        modified_at: datetime | None = None,
        status: str = "publish",
        content_type: str = "post",
    ) -> ContentItemWrite:
        published_at = datetime.fromisoformat(day).replace(hour=hour, tzinfo=UTC)
        payload = ContentItemWrite(
            item_id=item_id,
            url=f"https://example.com/{day}/{item_id}",
            published_at=published_at,
            modified_at=modified_at or clock(),
            content_type=content_type,
            status=status,
            title=f"Item {item_id}",
        )
        content_store.upsert_item(payload)
        return payload

    return _seed
