"""Domain models for live content and stored bucket documents."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from daily_sitemaps.catalog.keys import BucketKey


class UpsertAction(str, Enum):
    """Operation result for document upsert."""

    CREATED = "created"
    UPDATED = "updated"


@dataclass(slots=True)
class ContentItemWrite:
    """Input payload for writing one live content item."""

    item_id: str
    url: str
    published_at: datetime
    modified_at: datetime | None = None
    content_type: str = "post"
    status: str = "publish"
    title: str = ""


@dataclass(frozen=True, slots=True)
class ContentEntry:
    """One eligible item of a bucket, as handed to the serializer."""

    item_id: str
    url: str
    title: str
    content_type: str
    published_at: datetime
    modified_at: datetime


@dataclass(slots=True)
class BucketDocument:
    """Stored derived document for one bucket."""

    key: BucketKey
    body: str
    item_count: int
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class CatalogStats:
    """Aggregate view over all stored documents."""

    document_count: int
    total_items: int
    first_key: BucketKey | None
    last_key: BucketKey | None
