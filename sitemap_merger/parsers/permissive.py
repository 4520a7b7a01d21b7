"""Regex sitemap parser for documents the XML parser rejects."""

from __future__ import annotations

import logging
import re
from typing import Iterator
from xml.sax.saxutils import unescape

from ..entries import SitemapEntry
from . import ParseError, SitemapParser, build_entry, clean_text

LOGGER = logging.getLogger(__name__)

_ENTITIES = {"&quot;": '"', "&apos;": "'"}

_INDEX_RE = re.compile(r"<(?:[\w.-]+:)?sitemapindex\b", re.IGNORECASE)
_URLSET_RE = re.compile(r"<(?:[\w.-]+:)?urlset\b", re.IGNORECASE)
_URL_BLOCK_RE = re.compile(
    r"<(?:[\w.-]+:)?url\b[^>]*>(.*?)</(?:[\w.-]+:)?url\s*>",
    re.IGNORECASE | re.DOTALL,
)


def _field_re(tag: str) -> re.Pattern[str]:
    return re.compile(
        rf"<(?:[\w.-]+:)?{tag}\b[^>]*>(.*?)</(?:[\w.-]+:)?{tag}\s*>",
        re.IGNORECASE | re.DOTALL,
    )


_LOC_RE = _field_re("loc")
_LASTMOD_RE = _field_re("lastmod")
_CHANGEFREQ_RE = _field_re("changefreq")
_PRIORITY_RE = _field_re("priority")


def _extract(pattern: re.Pattern[str], block: str) -> str | None:
    match = pattern.search(block)
    if not match:
        return None
    text = clean_text(match.group(1))
    if text is None:
        return None
    return unescape(text, _ENTITIES)


class PermissiveSitemapParser(SitemapParser):
    """Extracts ``<url>`` blocks with regular expressions.

    Index documents are not expanded in this mode: they are logged and
    produce no entries.
    """

    name = "permissive"

    def __init__(self, *, logger: logging.Logger | logging.LoggerAdapter | None = None) -> None:
        self._log = logger or LOGGER

    def parse(self, xml_text: str, source: str) -> Iterator[SitemapEntry]:
        if _INDEX_RE.search(xml_text):
            self._log.warning(
                "Sitemap index detected in %s but the permissive parser cannot expand nested sitemaps",
                source,
            )
            return
        if not _URLSET_RE.search(xml_text):
            raise ParseError(f"No urlset or sitemapindex found in {source}")

        blocks = _URL_BLOCK_RE.findall(xml_text)
        self._log.debug("Permissive parser found %d url blocks in %s", len(blocks), source)
        for block in blocks:
            loc = _extract(_LOC_RE, block)
            if not loc:
                self._log.warning("Skipping url block without loc in %s: %.100s", source, block.strip())
                continue
            yield build_entry(
                loc,
                source,
                lastmod=_extract(_LASTMOD_RE, block),
                changefreq=_extract(_CHANGEFREQ_RE, block),
                priority=_extract(_PRIORITY_RE, block),
            )
