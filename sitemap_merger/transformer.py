"""Rewrites source-subdomain URLs into the canonical domain's URL space."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence
from urllib.parse import SplitResult, urlsplit, urlunsplit

from .config import DomainMapping
from .entries import prefix_path

LOGGER = logging.getLogger(__name__)


class TransformValidationError(RuntimeError):
    """Raised when a rewritten URL does not land on the canonical domain."""

    def __init__(self, message: str, *, original: str, transformed: str) -> None:
        super().__init__(message)
        self.original = original
        self.transformed = transformed


class SourceKind(str, Enum):
    CANONICAL = "canonical"
    MAPPED = "mapped"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class SourceClass:
    kind: SourceKind
    mapping: Optional[DomainMapping] = None

    @classmethod
    def canonical(cls) -> "SourceClass":
        return cls(SourceKind.CANONICAL)

    @classmethod
    def unknown(cls) -> "SourceClass":
        return cls(SourceKind.UNKNOWN)

    @property
    def label(self) -> str:
        if self.mapping is not None:
            return self.mapping.path_prefix
        return self.kind.value


def _hostname(parts: SplitResult) -> str:
    return (parts.hostname or "").lower()


class UrlTransformer:
    """Maps locations from configured source hosts onto the canonical domain."""

    def __init__(
        self,
        canonical_domain: str,
        mappings: Sequence[DomainMapping],
        *,
        bare_domain: Optional[str] = None,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.canonical_domain = canonical_domain.lower()
        self.bare_domain = bare_domain.lower() if bare_domain else None
        self.mappings = tuple(mappings)
        self._by_host = {mapping.subdomain.lower(): mapping for mapping in self.mappings}
        self._log = logger or LOGGER

    @property
    def source_subdomains(self) -> tuple[str, ...]:
        return tuple(self._by_host)

    def classify_source(self, location: str) -> SourceClass:
        try:
            host = _hostname(urlsplit(location))
        except ValueError:
            return SourceClass.unknown()
        if host == self.canonical_domain or (self.bare_domain and host == self.bare_domain):
            return SourceClass.canonical()
        mapping = self._by_host.get(host)
        if mapping is not None:
            return SourceClass(SourceKind.MAPPED, mapping)
        return SourceClass.unknown()

    def transform(self, location: str, source: SourceClass) -> str:
        parts = urlsplit(location)
        host = _hostname(parts)

        if host == self.canonical_domain:
            if parts.netloc == self.canonical_domain:
                return location
            return self._with_canonical_host(parts)

        if self.bare_domain and host == self.bare_domain:
            return self._with_canonical_host(parts)

        mapping = self._by_host.get(host)
        if mapping is not None:
            return self._validate(self._with_prefix(parts, mapping.path_prefix), location)

        if source.kind is SourceKind.CANONICAL:
            normalized = self._with_canonical_host(parts)
            self._log.info("Normalising misclassified canonical URL %s -> %s", location, normalized)
            return normalized

        self._log.warning("Unexpected host %r in %s (source %s); leaving unchanged", host, location, source.label)
        return location

    def _with_canonical_host(self, parts: SplitResult) -> str:
        return urlunsplit((parts.scheme or "https", self.canonical_domain, parts.path, parts.query, parts.fragment))

    def _with_prefix(self, parts: SplitResult, path_prefix: str) -> str:
        new_path = prefix_path(path_prefix, parts.path)
        return urlunsplit(("https", self.canonical_domain, new_path, parts.query, parts.fragment))

    def _validate(self, transformed: str, original: str) -> str:
        host = _hostname(urlsplit(transformed))
        if host != self.canonical_domain:
            message = (
                f"Transform validation failed: {original} -> {transformed}; "
                f"hostname must be {self.canonical_domain}"
            )
            self._log.error(message)
            raise TransformValidationError(message, original=original, transformed=transformed)
        for subdomain in self.source_subdomains:
            if subdomain in host:
                message = f"Source subdomain {subdomain} leaked into transformed URL {transformed}"
                self._log.error(message)
                raise TransformValidationError(message, original=original, transformed=transformed)
        return transformed
