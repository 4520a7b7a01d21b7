"""Final domain validation and protected-path completion."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence
from urllib.parse import urlsplit

from .config import ProtectedPathConfig
from .entries import SitemapEntry, normalize_path, prefix_path

LOGGER = logging.getLogger(__name__)


class NoValidEntriesError(RuntimeError):
    """Raised when nothing survives the merge; an empty sitemap is never emitted."""


@dataclass(slots=True)
class ValidationResult:
    valid: list[SitemapEntry] = field(default_factory=list)
    invalid: list[SitemapEntry] = field(default_factory=list)


class DomainValidator:
    def __init__(
        self,
        canonical_domain: str,
        protected: ProtectedPathConfig,
        *,
        source_subdomains: Sequence[str] = (),
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self._canonical_domain = canonical_domain.lower()
        self._base_url = f"https://{self._canonical_domain}"
        self._protected = protected
        self._source_subdomains = tuple(subdomain.lower() for subdomain in source_subdomains)
        self._log = logger or LOGGER

    def finalize(self, entries: Iterable[SitemapEntry]) -> ValidationResult:
        """Partition entries into canonical-domain ``valid`` and everything else."""

        result = ValidationResult()
        for entry in entries:
            if self._is_valid(entry):
                result.valid.append(entry)
            else:
                result.invalid.append(entry)

        if result.invalid:
            self._log.warning("Filtered out %d entries not on %s", len(result.invalid), self._canonical_domain)
        if not result.valid:
            raise NoValidEntriesError("No valid entries remaining after validation")
        return result

    def _is_valid(self, entry: SitemapEntry) -> bool:
        try:
            hostname = entry.hostname
            netloc = urlsplit(entry.location).netloc
            path = entry.path
        except ValueError as exc:
            self._log.warning("Invalid entry %s: %s", entry.location, exc)
            return False

        if hostname != self._canonical_domain:
            self._log.warning("Invalid entry (not %s): %s", self._canonical_domain, entry.location)
            return False
        if netloc != self._canonical_domain:
            self._log.warning("Invalid entry (host must be exactly %s): %s", self._canonical_domain, entry.location)
            return False
        if normalize_path(path) == "/":
            return True
        location = entry.location.lower()
        for subdomain in self._source_subdomains:
            if subdomain in location:
                self._log.warning("Invalid entry (contains %s): %s", subdomain, entry.location)
                return False
        return True

    def ensure_protected_paths(self, valid: Sequence[SitemapEntry]) -> list[SitemapEntry]:
        """Insert any protected path missing in canonical or prefixed form."""

        completed = list(valid)
        prefix = self._protected.prefix
        prefix_root = self._protected.prefix_root

        for path in self._protected.all_paths():
            if self._find_canonical(completed, path) is None:
                self._log.info("Adding missing protected path %s", path)
                completed.insert(0, SitemapEntry(location=self._url_for(path)))

        for path in self._protected.all_paths():
            if path == prefix_root:
                continue
            prefixed = normalize_path(prefix_path(prefix, path))
            if any(self._matches(entry, prefixed) for entry in completed):
                continue
            self._log.info("Adding missing prefixed protected path %s", prefixed)
            synthesized = SitemapEntry(location=self._url_for(prefixed))
            anchor = self._find_canonical(completed, path)
            if anchor is None:
                completed.append(synthesized)
            else:
                completed.insert(anchor + 1, synthesized)
        return completed

    def _url_for(self, path: str) -> str:
        if path == "/":
            return f"{self._base_url}/"
        return f"{self._base_url}{path}"

    def _matches(self, entry: SitemapEntry, normalized: str) -> bool:
        return entry.hostname == self._canonical_domain and entry.normalized_path == normalized

    def _find_canonical(self, entries: Sequence[SitemapEntry], path: str) -> int | None:
        target = normalize_path(path)
        for index, entry in enumerate(entries):
            if self._matches(entry, target):
                return index
        return None
