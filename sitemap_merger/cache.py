"""SQLAlchemy-backed cache for the merged sitemap document."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from models import Base, CachedSitemap

from .config import DEFAULT_CACHE_KEY, DEFAULT_CACHE_MAX_AGE

LOGGER = logging.getLogger(__name__)

_ENGINE_OPTIONS = {
    "pool_pre_ping": True,
    "pool_recycle": 1800,
}


class SitemapCacheError(RuntimeError):
    """Raised when the cache store cannot be read or written."""


_REGENERATION_LOCKS: dict[str, threading.Lock] = {}
_REGENERATION_LOCKS_GUARD = threading.Lock()


def regeneration_lock(key: str) -> threading.Lock:
    """Process-wide lock allowing one regeneration in flight per cache key."""

    with _REGENERATION_LOCKS_GUARD:
        return _REGENERATION_LOCKS.setdefault(key, threading.Lock())


@dataclass(slots=True)
class CachedDocument:
    key: str
    document: str
    generated_at: datetime
    page_count: int = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_memory_database(db_url: str) -> bool:
    return db_url in {"sqlite://", "sqlite:///:memory:"}


@lru_cache(maxsize=8)
def session_factory_for(db_url: str):
    """Create (once per URL) a session factory with the cache table in place."""

    if is_memory_database(db_url):
        engine = create_engine(
            db_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    elif db_url.startswith("sqlite"):
        engine = create_engine(db_url, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(db_url, **_ENGINE_OPTIONS)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)


class SitemapCache:
    """Stores the merged document under a fixed key with its generation time.

    Paginated chunk documents live under ``"{key}:page:{n}"`` and are
    invalidated together with the main document.
    """

    def __init__(
        self,
        session_factory,
        *,
        key: str = DEFAULT_CACHE_KEY,
        max_age: float = DEFAULT_CACHE_MAX_AGE,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.key = key
        self._max_age = timedelta(seconds=max_age)
        self._clock = clock or _utcnow

    def page_key(self, page: int) -> str:
        return f"{self.key}:page:{page}"

    def get(self, page: Optional[int] = None) -> Optional[CachedDocument]:
        key = self.key if page is None else self.page_key(page)
        try:
            with self._session_factory() as session:
                row = session.get(CachedSitemap, key)
                if row is None:
                    return None
                cached = CachedDocument(
                    key=row.key,
                    document=row.document,
                    generated_at=row.generated_at,
                    page_count=row.page_count or 1,
                )
        except Exception as exc:  # pragma: no cover - failure path
            raise SitemapCacheError(str(exc)) from exc

        age = _naive_utc(self._clock()) - _naive_utc(cached.generated_at)
        if age >= self._max_age:
            LOGGER.info("Cached sitemap %s expired (age %.0f minutes)", key, age.total_seconds() / 60)
            return None
        LOGGER.debug("Cache hit for %s (age %.0f minutes)", key, age.total_seconds() / 60)
        return cached

    def put(self, document: str, *, pages: Optional[list[str]] = None) -> datetime:
        """Upsert the cached document and its pages; returns the timestamp used.

        Pages left over from a previous, longer split are removed.
        """

        generated_at = _naive_utc(self._clock())
        pages = pages or []
        page_count = max(1, len(pages))
        rows = [(self.key, document)]
        rows.extend((self.page_key(number), page) for number, page in enumerate(pages, start=1))
        try:
            with self._session_factory() as session:
                for key, text in rows:
                    session.merge(
                        CachedSitemap(
                            key=key,
                            document=text,
                            page_count=page_count,
                            generated_at=generated_at,
                        )
                    )
                self._delete_stale_pages(session, {key for key, _ in rows})
                session.commit()
        except Exception as exc:  # pragma: no cover - failure path
            raise SitemapCacheError(str(exc)) from exc
        LOGGER.info("Stored merged sitemap under %s (%d pages)", self.key, page_count)
        return generated_at

    def invalidate(self) -> int:
        try:
            with self._session_factory() as session:
                deleted = self._delete_all(session)
                session.commit()
        except Exception as exc:  # pragma: no cover - failure path
            raise SitemapCacheError(str(exc)) from exc
        LOGGER.info("Invalidated %d cached sitemap documents", deleted)
        return deleted

    def _delete_stale_pages(self, session, keep: set[str]) -> int:
        query = session.query(CachedSitemap).filter(
            CachedSitemap.key.like(f"{self.key}:page:%"),
            CachedSitemap.key.not_in(keep),
        )
        return query.delete(synchronize_session=False)

    def _delete_all(self, session) -> int:
        query = session.query(CachedSitemap).filter(
            (CachedSitemap.key == self.key) | CachedSitemap.key.like(f"{self.key}:page:%")
        )
        return query.delete(synchronize_session=False)
