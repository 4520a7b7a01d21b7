"""ElementTree sitemap parser with recursive sitemap-index expansion."""

from __future__ import annotations

import logging
import threading
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from typing import Iterator, Optional

from ..entries import SitemapEntry
from ..http_client import FetchError
from . import FetchText, ParseError, SitemapParser, build_entry, clean_text

LOGGER = logging.getLogger(__name__)

_LEADING_JUNK = "\ufeff \t\r\n"


def _strip_namespace(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _strip_namespace(child.tag) == name:
            return clean_text(child.text)
    return None


class StructuralSitemapParser(SitemapParser):
    """Parses urlset and sitemapindex documents with :mod:`xml.etree`.

    Index documents are expanded by fetching every referenced sitemap
    concurrently and parsing it recursively; results are concatenated in
    index order. A referenced sitemap that fails to fetch or parse is logged
    and skipped. Documents the XML parser rejects are handed to ``fallback``.
    """

    name = "structural"

    def __init__(
        self,
        fetch: FetchText,
        *,
        fallback: SitemapParser | None = None,
        max_workers: int = 4,
        max_depth: int = 3,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._fetch = fetch
        self._fallback = fallback
        self._max_workers = max(1, max_workers)
        self._max_depth = max(0, max_depth)
        self._log = logger or LOGGER

    def parse(self, xml_text: str, source: str) -> Iterator[SitemapEntry]:
        visited = _VisitedSet()
        visited.add(source)
        yield from self._parse_document(xml_text, source, 0, visited)

    def _parse_document(
        self,
        xml_text: str,
        source: str,
        depth: int,
        visited: "_VisitedSet",
    ) -> Iterator[SitemapEntry]:
        try:
            root = ET.fromstring(xml_text.lstrip(_LEADING_JUNK))
        except ET.ParseError as exc:
            if self._fallback is None:
                raise ParseError(f"Malformed XML in {source}: {exc}") from exc
            self._log.warning("Malformed XML in %s (%s); falling back to %s parser", source, exc, self._fallback.name)
            yield from self._fallback.parse(xml_text, source)
            return

        kind = _strip_namespace(root.tag)
        if kind == "sitemapindex":
            yield from self._expand_index(root, source, depth, visited)
        elif kind == "urlset":
            yield from self._iter_urlset(root, source)
        else:
            raise ParseError(f"No urlset or sitemapindex found in {source} (root element <{kind}>)")

    def _iter_urlset(self, root: ET.Element, source: str) -> Iterator[SitemapEntry]:
        for element in root:
            if _strip_namespace(element.tag) != "url":
                continue
            loc = _child_text(element, "loc")
            if not loc:
                self._log.debug("Skipping url element without loc in %s", source)
                continue
            yield build_entry(
                loc,
                source,
                lastmod=_child_text(element, "lastmod"),
                changefreq=_child_text(element, "changefreq"),
                priority=_child_text(element, "priority"),
            )

    def _expand_index(
        self,
        root: ET.Element,
        source: str,
        depth: int,
        visited: "_VisitedSet",
    ) -> Iterator[SitemapEntry]:
        child_urls: list[str] = []
        for element in root:
            if _strip_namespace(element.tag) != "sitemap":
                continue
            loc = _child_text(element, "loc")
            if not loc:
                continue
            url = build_entry(loc, source).location
            if not visited.add(url):
                self._log.warning("Skipping already visited sitemap %s referenced from %s", url, source)
                continue
            child_urls.append(url)

        if depth + 1 > self._max_depth:
            if child_urls:
                self._log.warning(
                    "Sitemap index %s exceeds max depth %d; skipping %d nested sitemaps",
                    source,
                    self._max_depth,
                    len(child_urls),
                )
            return

        self._log.info("Expanding sitemap index %s with %d nested sitemaps", source, len(child_urls))
        if not child_urls:
            return

        workers = min(self._max_workers, len(child_urls))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._load_child, url, depth + 1, visited) for url in child_urls
            ]
            # Index order, not completion order.
            for url, future in zip(child_urls, futures):
                try:
                    entries = future.result()
                except (FetchError, ParseError) as exc:
                    self._log.error("Skipping nested sitemap %s: %s", url, exc)
                    continue
                except Exception as exc:  # noqa: BLE001
                    self._log.error("Unexpected failure loading nested sitemap %s: %s", url, exc)
                    continue
                self._log.debug("Nested sitemap %s yielded %d entries", url, len(entries))
                yield from entries

    def _load_child(self, url: str, depth: int, visited: "_VisitedSet") -> list[SitemapEntry]:
        text = self._fetch(url)
        return list(self._parse_document(text, url, depth, visited))


class _VisitedSet:
    def __init__(self) -> None:
        self._seen: set[str] = set()
        self._lock = threading.Lock()

    def add(self, url: str) -> bool:
        with self._lock:
            if url in self._seen:
                return False
            self._seen.add(url)
            return True
