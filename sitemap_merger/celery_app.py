"""Celery application setup for background sitemap regeneration."""

from __future__ import annotations

from typing import Any, Optional

from celery import Celery

from .cache import is_memory_database
from .config import CacheConfig, QueueConfig, load_cache_config, load_queue_config


def _prefixed(db_url: str, scheme: str) -> str:
    return db_url if db_url.startswith(scheme) else f"{scheme}{db_url}"


def celery_settings(cache: CacheConfig, queue: QueueConfig) -> dict[str, Any]:
    """Resolve broker and result backend, falling back to the cache database."""

    broker_url = queue.broker_url
    backend_url = queue.result_backend
    if is_memory_database(cache.db_url):
        broker_url = broker_url or "memory://"
        backend_url = backend_url or "cache+memory://"
    else:
        broker_url = broker_url or _prefixed(cache.db_url, "sqla+")
        backend_url = backend_url or _prefixed(cache.db_url, "db+")

    settings: dict[str, Any] = {
        "broker_url": broker_url,
        "result_backend": backend_url,
        "task_serializer": "json",
        "accept_content": ["json"],
        "result_serializer": "json",
        "task_always_eager": queue.always_eager,
        "task_acks_late": True,
        "worker_prefetch_multiplier": 1,
        "broker_connection_retry_on_startup": True,
    }
    if backend_url.startswith("db+"):
        settings["database_short_lived_sessions"] = True
    return settings


def configure_celery_app(app: Celery, cache: CacheConfig, queue: Optional[QueueConfig] = None) -> Celery:
    app.conf.update(**celery_settings(cache, queue or QueueConfig()))
    return app


def create_celery_app(cache: Optional[CacheConfig] = None, queue: Optional[QueueConfig] = None) -> Celery:
    """Instantiate the Celery app for the given cache database and queue settings."""

    app = Celery("sitemap_merger", include=["sitemap_merger.tasks"])
    return configure_celery_app(app, cache or CacheConfig(), queue)


celery_app = create_celery_app(load_cache_config(), load_queue_config())


__all__ = ["celery_app", "celery_settings", "configure_celery_app", "create_celery_app"]
