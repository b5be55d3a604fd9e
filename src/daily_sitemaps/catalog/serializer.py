"""Sitemap XML rendering and parsing for bucket documents."""

from __future__ import annotations

import re
from collections.abc import Sequence
from typing import Protocol
from urllib.parse import urlparse
from xml.sax.saxutils import escape

from defusedxml import ElementTree

from daily_sitemaps.catalog.models import ContentEntry

SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"


class DocumentParseError(ValueError):
    """Stored body is not a readable urlset document."""


class Serializer(Protocol):
    def render(self, items: Sequence[ContentEntry]) -> str:
        """Render the document body for one bucket's items."""
        raise NotImplementedError


class UrlsetSerializer:
    """Render items as a sitemaps.org ``urlset`` with one ``<url>`` per item."""

    def render(self, items: Sequence[ContentEntry]) -> str:
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            f'<urlset xmlns="{SITEMAP_NAMESPACE}">',
        ]
        for item in items:
            lines.append("\t<url>")
            lines.append(f"\t\t<loc>{escape(item.url)}</loc>")
            lines.append(
                f"\t\t<lastmod>{item.modified_at.strftime('%Y-%m-%dT%H:%M:%SZ')}</lastmod>",
            )
            lines.append("\t</url>")
        lines.append("</urlset>")
        return "\n".join(lines)


def count_urls(body: str) -> int:
    """Count ``<url>`` entries of a stored urlset body."""

    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as error:
        raise DocumentParseError(f"Invalid sitemap XML: {error}") from error
    return len(root.findall(f"{{{SITEMAP_NAMESPACE}}}url"))


_LASTMOD_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:[+-]\d{2}:\d{2}|Z)$")


def validate_urlset(body: str) -> list[str]:
    """Return the structural problems of a stored urlset body; empty means valid.

    ``<lastmod>`` is optional, but must be a full ISO-8601 timestamp when present.
    """

    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as error:
        return [f"XML error: {error}"]

    problems: list[str] = []
    if root.tag != f"{{{SITEMAP_NAMESPACE}}}urlset":
        if root.tag.rpartition("}")[2] == "urlset":
            problems.append("Missing or invalid sitemap namespace")
        else:
            problems.append("Root element must be <urlset>")
    urls = root.findall(f"{{{SITEMAP_NAMESPACE}}}url")
    if not urls:
        problems.append("Sitemap must contain at least one <url> entry")
    for url in urls:
        problems.extend(_url_problems(url))
    return problems


def _url_problems(url) -> list[str]:
    problems: list[str] = []
    locs = url.findall(f"{{{SITEMAP_NAMESPACE}}}loc")
    if not locs:
        problems.append("URL missing required <loc> element")
    elif len(locs) > 1:
        problems.append("URL has multiple <loc> elements")
    else:
        location = (locs[0].text or "").strip()
        if not location:
            problems.append("URL <loc> element is empty")
        elif not _is_absolute_url(location):
            problems.append(f"URL <loc> element contains invalid URL: {location}")

    lastmod = url.find(f"{{{SITEMAP_NAMESPACE}}}lastmod")
    if lastmod is not None:
        value = (lastmod.text or "").strip()
        if value and not _LASTMOD_PATTERN.match(value):
            problems.append(f"URL <lastmod> element contains invalid date format: {value}")
    return problems


def _is_absolute_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc) and " " not in value
