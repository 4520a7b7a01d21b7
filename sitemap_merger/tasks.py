"""Celery tasks for regenerating the cached merged sitemap."""

from __future__ import annotations

import logging
import os
from typing import Any, Mapping, Optional

from celery import Task

from .cache import SitemapCache, regeneration_lock, session_factory_for
from .celery_app import celery_app
from .config import MergeConfig, load_merge_config
from .merge import MergeResult, SitemapMerger
from .validation import NoValidEntriesError

LOGGER = logging.getLogger(__name__)


def _build_config(overrides: Optional[Mapping[str, str]]) -> MergeConfig:
    environ = dict(os.environ)
    if overrides:
        environ.update({str(key): str(value) for key, value in overrides.items()})
    return load_merge_config(environ)


def regenerate(config: MergeConfig, cache: SitemapCache | None = None) -> MergeResult:
    """Run a fresh merge and store the documents in the cache."""

    if cache is None:
        cache = SitemapCache(
            session_factory_for(config.cache.db_url),
            key=config.cache.key,
            max_age=config.cache.max_age,
        )
    with regeneration_lock(cache.key), SitemapMerger(config) as merger:
        result = merger.merge()
        cache.put(result.document, pages=result.pages)
    return result


@celery_app.task(name="sitemap_merger.regenerate_sitemap", bind=True)
def regenerate_sitemap_task(self: Task, environ: Optional[Mapping[str, str]] = None) -> Mapping[str, Any]:
    config = _build_config(environ)
    try:
        result = regenerate(config)
    except NoValidEntriesError as exc:
        LOGGER.error("Sitemap regeneration failed: %s", exc)
        raise
    LOGGER.info(
        "Regenerated sitemap with %d entries across %d pages",
        result.report.final_count,
        result.report.page_count,
    )
    return {"entries": result.report.final_count, "pages": result.report.page_count}
