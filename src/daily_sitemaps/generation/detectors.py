"""Read-only detection of buckets whose documents need (re)generation."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from daily_sitemaps.catalog.content import ContentQuery
from daily_sitemaps.catalog.documents import BucketDocumentStore
from daily_sitemaps.catalog.keys import BucketKey
from daily_sitemaps.generation.models import DetectionResult

logger = logging.getLogger(__name__)


class BucketDetector(Protocol):
    def detect(self) -> set[BucketKey]:
        """Return candidate keys without modifying anything."""
        raise NotImplementedError


class AllDetector:
    """Every bucket that holds eligible content."""

    def __init__(self, content: ContentQuery) -> None:
        self.content = content

    def detect(self) -> set[BucketKey]:
        if not self.content.enabled_content_types:
            return set()
        return self.content.eligible_keys()


class MissingDetector:
    """Content-bearing buckets that have no stored document yet."""

    def __init__(self, content: ContentQuery, documents: BucketDocumentStore) -> None:
        self.content = content
        self.documents = documents

    def detect(self) -> set[BucketKey]:
        if not self.content.enabled_content_types:
            return set()
        return self.content.eligible_keys() - self.documents.existing_keys()


class StaleDetector:
    """Stored documents whose content changed since the last completed run.

    A document is stale when eligible content of its day was modified after
    the watermark, or when its stored item count no longer matches the live
    count (catches deletions and status changes that leave no modification
    time behind). A swap that keeps both the count and the modification times
    unchanged is not visible here.
    """

    def __init__(
        self,
        content: ContentQuery,
        documents: BucketDocumentStore,
        last_run: Callable[[], datetime | None],
    ) -> None:
        self.content = content
        self.documents = documents
        self.last_run = last_run

    def detect(self) -> set[BucketKey]:
        if not self.content.enabled_content_types:
            return set()
        watermark = self.last_run()
        if watermark is None:
            return set()

        stored_counts = self.documents.item_counts()
        if not stored_counts:
            return set()

        modified = self.content.modified_since(stored_counts.keys(), watermark)
        live_counts = self.content.eligible_counts()
        drifted = {
            key for key, stored in stored_counts.items() if live_counts.get(key, 0) != stored
        }
        logger.debug(
            "Stale detection since %s: modified=%d count_drift=%d",
            watermark.isoformat(),
            len(modified),
            len(drifted),
        )
        return modified | drifted


def detect_changes(missing: MissingDetector, stale: StaleDetector) -> DetectionResult:
    """Compose missing and stale detection into one result."""

    missing_keys = missing.detect()
    stale_keys = stale.detect() - missing_keys
    return DetectionResult(
        missing=sorted(missing_keys),
        stale=sorted(stale_keys),
        union=sorted(missing_keys | stale_keys),
    )


def describe_changes(detection: DetectionResult) -> str:
    """Human readable summary, e.g. ``3 missing sitemaps and 2 sitemaps that need updating``."""

    parts: list[str] = []
    if detection.missing:
        parts.append(_plural(len(detection.missing), "missing sitemap", "missing sitemaps"))
    if detection.stale:
        parts.append(
            _plural(
                len(detection.stale),
                "sitemap that needs updating",
                "sitemaps that need updating",
            ),
        )
    if not parts:
        return "All sitemaps are up to date"
    return " and ".join(parts)


def _plural(count: int, singular: str, plural: str) -> str:
    return f"{count} {singular if count == 1 else plural}"
