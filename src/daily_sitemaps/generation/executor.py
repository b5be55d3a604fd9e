"""Generate, update or delete the document of one bucket."""

from __future__ import annotations

import logging

from daily_sitemaps.catalog.content import ContentQuery
from daily_sitemaps.catalog.documents import BucketDocumentStore
from daily_sitemaps.catalog.keys import BucketKey
from daily_sitemaps.catalog.models import UpsertAction
from daily_sitemaps.catalog.serializer import Serializer
from daily_sitemaps.generation.models import (
    GenerationErrorCode,
    GenerationOutcome,
    GenerationResult,
)

logger = logging.getLogger(__name__)


class GenerationExecutor:
    """Sole writer of bucket documents."""

    def __init__(
        self,
        *,
        content: ContentQuery,
        documents: BucketDocumentStore,
        serializer: Serializer,
    ) -> None:
        self.content = content
        self.documents = documents
        self.serializer = serializer

    def execute(self, key: BucketKey, *, force: bool = False) -> GenerationResult:
        """Bring one bucket's document in line with its live content.

        Storage and rendering errors are logged and reported as a failed
        result so one bad bucket never aborts a batch.
        """

        if not self.content.enabled_content_types:
            return GenerationResult(
                key=key,
                outcome=GenerationOutcome.FAILED,
                message="No content types are enabled for sitemaps.",
                error_code=GenerationErrorCode.NO_CONTENT_TYPES,
            )

        try:
            return self._execute(key, force=force)
        except Exception as error:  # noqa: BLE001
            logger.exception("Sitemap generation failed for %s", key)
            return GenerationResult(
                key=key,
                outcome=GenerationOutcome.FAILED,
                message=f"Error generating sitemap for {key}: {error}",
                error_code=GenerationErrorCode.GENERATION_ERROR,
            )

    def _execute(self, key: BucketKey, *, force: bool) -> GenerationResult:
        items = self.content.eligible_items(key)
        if not items:
            if self.documents.delete(key):
                logger.info("Deleted sitemap for %s: no eligible content left", key)
                return GenerationResult(
                    key=key,
                    outcome=GenerationOutcome.DELETED,
                    message=f"Deleted sitemap for {key} (no content).",
                )
            return GenerationResult(
                key=key,
                outcome=GenerationOutcome.UNCHANGED,
                message=f"No content for {key}.",
            )

        if not force and self.documents.exists(key):
            return GenerationResult(
                key=key,
                outcome=GenerationOutcome.FAILED,
                message=f"Sitemap for {key} already exists.",
                error_code=GenerationErrorCode.ALREADY_EXISTS,
            )

        body = self.serializer.render(items)
        action = self.documents.upsert(key, body, len(items))
        outcome = (
            GenerationOutcome.CREATED if action == UpsertAction.CREATED else GenerationOutcome.UPDATED
        )
        logger.debug("Sitemap %s for %s with %d items", outcome.value, key, len(items))
        return GenerationResult(
            key=key,
            outcome=outcome,
            item_count=len(items),
            message=f"Sitemap {outcome.value} for {key} with {len(items)} items.",
        )
