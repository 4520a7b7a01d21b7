"""Serialises merged entries into sitemaps.org XML documents."""

from __future__ import annotations

import logging
from typing import Iterable, Sequence
from xml.sax.saxutils import escape

from .entries import SitemapEntry, normalize_path

LOGGER = logging.getLogger(__name__)

MAX_URLS_PER_SITEMAP = 50_000
SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_QUOTE_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def escape_xml(text: str) -> str:
    return escape(text, _QUOTE_ENTITIES)


def _dedupe_key(entry: SitemapEntry) -> str:
    try:
        return f"{entry.hostname}{normalize_path(entry.path)}"
    except ValueError:
        return entry.location


def unique_entries(entries: Iterable[SitemapEntry]) -> list[SitemapEntry]:
    """Collapse entries sharing a normalised path, keeping the first seen."""

    seen: set[str] = set()
    unique: list[SitemapEntry] = []
    for entry in entries:
        key = _dedupe_key(entry)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entry)
    return unique


def prepare_entries(entries: Iterable[SitemapEntry]) -> list[SitemapEntry]:
    return sorted(unique_entries(entries), key=lambda entry: entry.location)


class SitemapBuilder:
    """Builds a ``urlset`` document, or a ``sitemapindex`` past the protocol limit."""

    def __init__(
        self,
        canonical_domain: str,
        *,
        max_urls: int = MAX_URLS_PER_SITEMAP,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._base_url = f"https://{canonical_domain.lower()}"
        self._max_urls = max(1, max_urls)
        self._log = logger or LOGGER

    def build(self, entries: Iterable[SitemapEntry]) -> str:
        prepared = prepare_entries(entries)
        if len(prepared) > self._max_urls:
            pages = self._chunk(prepared)
            self._log.info("Splitting %d entries into %d sitemap pages", len(prepared), len(pages))
            return self.render_index(len(pages))
        return self.render_urlset(prepared)

    def page_count(self, entries: Iterable[SitemapEntry]) -> int:
        prepared = prepare_entries(entries)
        if len(prepared) <= self._max_urls:
            return 1
        return len(self._chunk(prepared))

    def build_page(self, entries: Iterable[SitemapEntry], page: int) -> str:
        """Return the ``urlset`` for 1-based ``page`` of an index split."""

        pages = self._chunk(prepare_entries(entries))
        if page < 1 or page > len(pages):
            raise IndexError(f"Sitemap page {page} out of range (1-{len(pages)})")
        return self.render_urlset(pages[page - 1])

    def page_location(self, page: int) -> str:
        return f"{self._base_url}/sitemap-{page}.xml"

    def _chunk(self, entries: Sequence[SitemapEntry]) -> list[Sequence[SitemapEntry]]:
        return [entries[i : i + self._max_urls] for i in range(0, len(entries), self._max_urls)] or [entries]

    def render_urlset(self, entries: Iterable[SitemapEntry]) -> str:
        lines = [XML_DECLARATION, f'<urlset xmlns="{SITEMAP_NAMESPACE}">']
        for entry in entries:
            lines.append("  <url>")
            lines.append(f"    <loc>{escape_xml(entry.location)}</loc>")
            if entry.last_modified:
                lines.append(f"    <lastmod>{escape_xml(entry.last_modified)}</lastmod>")
            if entry.change_frequency:
                lines.append(f"    <changefreq>{escape_xml(entry.change_frequency)}</changefreq>")
            if entry.priority:
                lines.append(f"    <priority>{escape_xml(entry.priority)}</priority>")
            lines.append("  </url>")
        lines.append("</urlset>")
        return "\n".join(lines)

    def render_index(self, page_count: int) -> str:
        lines = [XML_DECLARATION, f'<sitemapindex xmlns="{SITEMAP_NAMESPACE}">']
        for page in range(1, page_count + 1):
            lines.append("  <sitemap>")
            lines.append(f"    <loc>{escape_xml(self.page_location(page))}</loc>")
            lines.append("  </sitemap>")
        lines.append("</sitemapindex>")
        return "\n".join(lines)
