"""Removal of documents whose day has no eligible content left."""

from __future__ import annotations

import logging

from daily_sitemaps.catalog.content import ContentQuery
from daily_sitemaps.catalog.documents import BucketDocumentStore

logger = logging.getLogger(__name__)


class CleanupReconciler:
    """Deletes orphaned documents; one failing key never stops the scan."""

    def __init__(self, *, content: ContentQuery, documents: BucketDocumentStore) -> None:
        self.content = content
        self.documents = documents

    def reconcile(self) -> int:
        """Delete every orphaned document and return how many were removed."""

        if not self.content.enabled_content_types:
            logger.warning("Skipping sitemap cleanup: no content types are enabled")
            return 0

        deleted = 0
        for key in sorted(self.documents.existing_keys()):
            try:
                if self.content.eligible_count(key) > 0:
                    continue
                if self.documents.delete(key):
                    deleted += 1
                    logger.info("Deleted orphaned sitemap for %s", key)
            except Exception:  # noqa: BLE001
                logger.exception("Failed to reconcile sitemap for %s", key)
        if deleted:
            logger.info("Cleanup removed %d orphaned sitemaps", deleted)
        return deleted
