"""Recounting and validation of stored documents."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from daily_sitemaps.catalog.documents import SQLiteDocumentStore
from daily_sitemaps.catalog.keys import BucketKey
from daily_sitemaps.catalog.serializer import DocumentParseError, count_urls, validate_urlset

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RecountResult:
    """Totals of a recount pass."""

    document_count: int = 0
    total_items: int = 0
    corrected: int = 0
    unreadable: int = 0
    halted: bool = False


class CatalogRecounter:
    """Totals stored item counts, optionally re-deriving them from document bodies."""

    def __init__(
        self,
        documents: SQLiteDocumentStore,
        *,
        should_stop: Callable[[], bool] = lambda: False,
    ) -> None:
        self.documents = documents
        self.should_stop = should_stop

    def fast_recount(self) -> RecountResult:
        """Sum the stored counts without reading any body."""

        stats = self.documents.stats()
        return RecountResult(document_count=stats.document_count, total_items=stats.total_items)

    def full_recount(self) -> RecountResult:
        """Parse every body, fix drifted counts, stop between documents when halted."""

        result = RecountResult()
        for key in sorted(self.documents.existing_keys()):
            if self.should_stop():
                result.halted = True
                logger.info("Full recount halted after %d documents", result.document_count)
                break
            document = self.documents.get(key)
            if document is None:
                continue
            result.document_count += 1
            try:
                counted = count_urls(document.body)
            except DocumentParseError as error:
                result.unreadable += 1
                result.total_items += document.item_count
                logger.warning("Cannot recount sitemap %s: %s", key, error)
                continue
            if counted != document.item_count:
                self.documents.set_item_count(key, counted)
                result.corrected += 1
                logger.info(
                    "Corrected item count for %s: %d -> %d",
                    key,
                    document.item_count,
                    counted,
                )
            result.total_items += counted
        return result


@dataclass(slots=True)
class ValidationResult:
    """Totals of a validation pass; ``problems`` pairs each key with one finding."""

    document_count: int = 0
    valid: int = 0
    invalid: int = 0
    problems: list[tuple[BucketKey, str]] = field(default_factory=list)
    halted: bool = False

    @property
    def error_count(self) -> int:
        return len(self.problems)


class CatalogValidator:
    """Checks stored bodies are well-formed sitemaps.org urlset documents."""

    def __init__(
        self,
        documents: SQLiteDocumentStore,
        *,
        should_stop: Callable[[], bool] = lambda: False,
    ) -> None:
        self.documents = documents
        self.should_stop = should_stop

    def validate(self, keys: Iterable[BucketKey] | None = None) -> ValidationResult:
        """Validate the given keys (default: every stored document) in day order."""

        result = ValidationResult()
        targets = sorted(self.documents.existing_keys() if keys is None else set(keys))
        for key in targets:
            if self.should_stop():
                result.halted = True
                logger.info("Validation halted after %d documents", result.document_count)
                break
            result.document_count += 1
            document = self.documents.get(key)
            if document is None:
                problems = ["Sitemap not found"]
            elif not document.body.strip():
                problems = ["Sitemap has no XML data"]
            else:
                problems = validate_urlset(document.body)
            if problems:
                result.invalid += 1
                result.problems.extend((key, problem) for problem in problems)
                logger.warning("Sitemap %s failed validation: %s", key, "; ".join(problems))
            else:
                result.valid += 1
        return result
