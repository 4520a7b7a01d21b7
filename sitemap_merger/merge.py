"""Fetches every source sitemap and runs the merge pipeline over the results."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .builder import SitemapBuilder, prepare_entries
from .config import MergeConfig, SourceConfig
from .dedupe import Deduplicator, RemovedEntry
from .entries import SitemapEntry
from .http_client import FetchError, SitemapFetcher
from .parsers import ParseError, SitemapParser, select_parser
from .transformer import TransformValidationError, UrlTransformer
from .validation import DomainValidator, NoValidEntriesError

LOGGER = logging.getLogger(__name__)

Logger = logging.Logger | logging.LoggerAdapter


@dataclass(slots=True)
class SourceReport:
    name: str
    url: str
    total: int = 0
    rejected: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class MergeReport:
    generated_at: str
    sources: list[SourceReport] = field(default_factory=list)
    before_deduplication: int = 0
    after_deduplication: int = 0
    removed: list[RemovedEntry] = field(default_factory=list)
    invalid_filtered: int = 0
    synthesized: int = 0
    final_count: int = 0
    page_count: int = 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.generated_at,
            "statistics": {
                "sources": {
                    source.name: {"url": source.url, "total": source.total, "rejected": source.rejected, "error": source.error}
                    for source in self.sources
                },
                "beforeDeduplication": self.before_deduplication,
                "afterDeduplication": self.after_deduplication,
                "removedCount": len(self.removed),
                "invalidFiltered": self.invalid_filtered,
                "synthesized": self.synthesized,
                "finalCount": self.final_count,
                "pageCount": self.page_count,
            },
            "removedUrls": [asdict(removed) for removed in self.removed],
        }


@dataclass(slots=True)
class MergeResult:
    document: str
    entries: list[SitemapEntry]
    report: MergeReport
    pages: list[str] = field(default_factory=list)


class SitemapMerger:
    """Runs sources -> parse -> transform -> dedupe -> validate -> build.

    Source fetches run concurrently and are failure isolated: a source that
    cannot be fetched or parsed contributes zero entries. Only when every
    source fails, or nothing survives validation, is the merge fatal.
    """

    def __init__(
        self,
        config: MergeConfig,
        *,
        fetch: Callable[[str], str] | None = None,
        fetcher: SitemapFetcher | None = None,
        parser: SitemapParser | None = None,
        logger: Logger | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._config = config
        self._log = logger or LOGGER
        self._owns_fetcher = fetch is None and fetcher is None
        if fetch is None:
            fetcher = fetcher or SitemapFetcher(
                user_agent=config.user_agent,
                timeout=config.timeout,
                retry=config.retry,
            )
            fetch = fetcher.fetch_text
        self._fetcher = fetcher
        self._fetch = fetch
        self._max_workers = max_workers or max(1, len(config.sources))
        self._parser = parser or select_parser(
            fetch,
            max_workers=self._max_workers,
            max_depth=config.max_index_depth,
            logger=self._log,
        )
        self._transformer = UrlTransformer(
            config.canonical_domain,
            config.mappings,
            bare_domain=config.bare_domain,
            logger=self._log,
        )
        self._deduplicator = Deduplicator(config.canonical_domain, config.protected, logger=self._log)
        self._validator = DomainValidator(
            config.canonical_domain,
            config.protected,
            source_subdomains=config.source_subdomains,
            logger=self._log,
        )
        self._builder = SitemapBuilder(config.canonical_domain, logger=self._log)

    @property
    def transformer(self) -> UrlTransformer:
        return self._transformer

    @property
    def builder(self) -> SitemapBuilder:
        return self._builder

    def close(self) -> None:
        if self._owns_fetcher and self._fetcher is not None:
            self._fetcher.close()

    def __enter__(self) -> "SitemapMerger":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()

    def load_source(self, source: SourceConfig, report: SourceReport | None = None) -> list[SitemapEntry]:
        report = report or SourceReport(name=source.name, url=source.url)
        xml_text = self._fetch(source.url)
        self._log.info("[%s] Fetched sitemap XML, length: %d", source.name, len(xml_text))

        entries: list[SitemapEntry] = []
        for entry in self._parser.parse(xml_text, source.url):
            report.total += 1
            source_class = self._transformer.classify_source(entry.location)
            try:
                location = self._transformer.transform(entry.location, source_class)
            except TransformValidationError as exc:
                report.rejected += 1
                self._log.error("[%s] Dropping %s: %s", source.name, entry.location, exc)
                continue
            entries.append(entry.with_location(location))

        self._log.info("[%s] Parsed %d entries, %d after transformation", source.name, report.total, len(entries))
        if not entries:
            self._log.warning("[%s] Source returned no entries", source.name)
        return entries

    def collect(self) -> tuple[list[SitemapEntry], list[SourceReport]]:
        sources = list(self._config.sources)
        reports = [SourceReport(name=source.name, url=source.url) for source in sources]
        collected: list[SitemapEntry] = []

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            futures = [
                executor.submit(self.load_source, source, report)
                for source, report in zip(sources, reports)
            ]
            for source, report, future in zip(sources, reports, futures):
                try:
                    entries = future.result()
                except (FetchError, ParseError) as exc:
                    report.error = str(exc)
                    self._log.error("Failed to load %s sitemap from %s: %s", source.name, source.url, exc)
                    continue
                except Exception as exc:  # noqa: BLE001
                    report.error = f"{type(exc).__name__}: {exc}"
                    self._log.error("Unexpected failure loading %s sitemap from %s: %s", source.name, source.url, exc)
                    continue
                collected.extend(entries)

        return collected, reports

    def merge(self) -> MergeResult:
        report = MergeReport(generated_at=datetime.now(timezone.utc).isoformat())
        entries, report.sources = self.collect()

        if all(not source.ok for source in report.sources):
            errors = "; ".join(f"{source.name}: {source.error}" for source in report.sources)
            raise NoValidEntriesError(f"All sitemap sources failed: {errors}")
        if not entries:
            raise NoValidEntriesError("Sitemap sources returned no entries")

        report.before_deduplication = len(entries)
        deduplicated = self._deduplicator.deduplicate(entries)
        report.after_deduplication = len(deduplicated.kept)
        report.removed = deduplicated.removed

        validated = self._validator.finalize(deduplicated.kept)
        report.invalid_filtered = len(validated.invalid)

        completed = self._validator.ensure_protected_paths(validated.valid)
        report.synthesized = len(completed) - len(validated.valid)

        final_entries = prepare_entries(completed)
        report.final_count = len(final_entries)
        report.page_count = self._builder.page_count(final_entries)

        document = self._builder.build(final_entries)
        pages: list[str] = []
        if report.page_count > 1:
            pages = [self._builder.build_page(final_entries, page) for page in range(1, report.page_count + 1)]

        self._log.info(
            "Merged sitemap: %d entries (%d removed as duplicates, %d invalid, %d synthesized, %d pages)",
            report.final_count,
            len(report.removed),
            report.invalid_filtered,
            report.synthesized,
            report.page_count,
        )
        return MergeResult(document=document, entries=final_entries, report=report, pages=pages)
