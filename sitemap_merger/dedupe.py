"""Removes canonical entries made redundant by a prefixed counterpart."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .config import ProtectedPathConfig
from .entries import SitemapEntry, normalize_path

LOGGER = logging.getLogger(__name__)

REASON_PREFIXED_VERSION = "Duplicate: prefixed version exists"


@dataclass(frozen=True, slots=True)
class RemovedEntry:
    removed: str
    kept: str
    reason: str = REASON_PREFIXED_VERSION


@dataclass(slots=True)
class DeduplicationResult:
    kept: list[SitemapEntry]
    removed: list[RemovedEntry] = field(default_factory=list)


class Deduplicator:
    """Drops ``/a/b`` when ``/{prefix}/a/b`` is also present.

    The root, exact protected paths and paths matching a protected pattern
    are never removed. A prefixed entry whose stripped path is itself a
    protected path never causes a removal. Literal duplicates are left for
    the builder to collapse.
    """

    def __init__(
        self,
        canonical_domain: str,
        protected: ProtectedPathConfig,
        *,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._canonical_domain = canonical_domain.lower()
        self._protected = protected
        self._prefix_root = protected.prefix_root
        self._log = logger or LOGGER

    def _prefixed_remainder(self, path: str) -> str | None:
        if path.startswith(self._prefix_root + "/"):
            return normalize_path(path[len(self._prefix_root):])
        return None

    def _prefixed_paths(self, entries: list[SitemapEntry]) -> dict[str, SitemapEntry]:
        prefixed: dict[str, SitemapEntry] = {}
        for entry in entries:
            if entry.hostname != self._canonical_domain:
                continue
            remainder = self._prefixed_remainder(entry.path)
            if remainder is None or remainder == "/":
                continue
            if self._protected.is_protected(remainder):
                continue
            prefixed.setdefault(remainder, entry)
        return prefixed

    def deduplicate(self, entries: Iterable[SitemapEntry]) -> DeduplicationResult:
        items = list(entries)
        self._log.info("Starting deduplication with %d entries", len(items))

        prefixed = self._prefixed_paths(items)
        self._log.debug("Found %d prefixed paths to check for duplicates", len(prefixed))

        result = DeduplicationResult(kept=[])
        for entry in items:
            counterpart = self._redundant_with(entry, prefixed)
            if counterpart is None:
                result.kept.append(entry)
                continue
            self._log.debug("Removing duplicate %s (prefixed version exists: %s)", entry.location, counterpart.location)
            result.removed.append(RemovedEntry(removed=entry.location, kept=counterpart.location))

        if result.removed:
            self._log.info("Deduplication removed %d canonical entries", len(result.removed))
        else:
            self._log.info("Deduplication found no duplicates to remove")
        return result

    def _redundant_with(
        self,
        entry: SitemapEntry,
        prefixed: dict[str, SitemapEntry],
    ) -> SitemapEntry | None:
        if entry.hostname != self._canonical_domain:
            return None
        path = entry.normalized_path
        if path == "/" or path == self._prefix_root or self._prefixed_remainder(entry.path) is not None:
            return None
        if self._protected.is_protected(path) or self._protected.matches_pattern(path):
            return None
        return prefixed.get(path)
