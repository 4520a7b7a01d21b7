"""Sitemap entry model and path normalisation helpers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional
from urllib.parse import urlsplit


@dataclass(frozen=True, slots=True)
class SitemapEntry:
    location: str
    last_modified: Optional[str] = None
    change_frequency: Optional[str] = None
    priority: Optional[str] = None

    @property
    def hostname(self) -> str:
        return (urlsplit(self.location).hostname or "").lower()

    @property
    def path(self) -> str:
        return urlsplit(self.location).path or "/"

    @property
    def normalized_path(self) -> str:
        return normalize_path(self.path)

    def with_location(self, location: str) -> "SitemapEntry":
        return replace(self, location=location)


def normalize_path(path: str) -> str:
    """Strip trailing slashes; the root path is a fixed point."""

    return path.rstrip("/") or "/"


def is_root_path(path: str) -> bool:
    return normalize_path(path) == "/"


def prefix_path(prefix: str, path: str) -> str:
    """Nest ``path`` under ``/{prefix}``; the root maps to ``/{prefix}`` itself."""

    if is_root_path(path):
        return f"/{prefix}"
    if not path.startswith("/"):
        path = f"/{path}"
    return f"/{prefix}{path}"
