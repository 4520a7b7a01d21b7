"""Parser interfaces for sitemap documents."""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterator
from urllib.parse import urljoin

from ..entries import SitemapEntry

LOGGER = logging.getLogger(__name__)

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"

FetchText = Callable[[str], str]

_CDATA_RE = re.compile(r"^<!\[CDATA\[(.*)\]\]>$", re.DOTALL)


class ParseError(RuntimeError):
    """Raised when a document holds no recognisable sitemap structure."""


class SitemapParser:
    """Base interface for sitemap parsing strategies."""

    name = "base"

    def parse(self, xml_text: str, source: str) -> Iterator[SitemapEntry]:  # pragma: no cover - interface only
        raise NotImplementedError


def clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    text = value.strip()
    match = _CDATA_RE.match(text)
    if match:
        text = match.group(1).strip()
    return text or None


def build_entry(
    loc: str,
    source: str,
    *,
    lastmod: str | None = None,
    changefreq: str | None = None,
    priority: str | None = None,
) -> SitemapEntry:
    location = loc
    if source.startswith(("http://", "https://")):
        location = urljoin(source, loc)
    return SitemapEntry(
        location=location,
        last_modified=lastmod,
        change_frequency=changefreq,
        priority=priority,
    )


def structural_parsing_available() -> bool:
    try:
        import xml.parsers.expat  # noqa: F401
    except ImportError:
        return False
    return True


def select_parser(
    fetch: FetchText,
    *,
    max_workers: int = 4,
    max_depth: int = 3,
    logger: logging.Logger | logging.LoggerAdapter | None = None,
) -> SitemapParser:
    """Pick the parsing strategy once, based on what the runtime supports."""

    from .permissive import PermissiveSitemapParser
    from .structural import StructuralSitemapParser

    log = logger or LOGGER
    permissive = PermissiveSitemapParser(logger=log)
    if not structural_parsing_available():
        log.warning("XML parser unavailable; using permissive regex sitemap parser")
        return permissive
    return StructuralSitemapParser(
        fetch,
        fallback=permissive,
        max_workers=max_workers,
        max_depth=max_depth,
        logger=log,
    )


__all__ = [
    "FetchText",
    "ParseError",
    "SITEMAP_NS",
    "SitemapParser",
    "build_entry",
    "clean_text",
    "select_parser",
    "structural_parsing_available",
]
