"""Configuration utilities shared by the merge pipeline and its collaborators."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from .entries import normalize_path

DEFAULT_USER_AGENT = "sitemap-merger/1.0"
DEFAULT_CACHE_KEY = "merged_sitemap"
DEFAULT_CACHE_MAX_AGE = 24 * 60 * 60.0
DEFAULT_MAX_INDEX_DEPTH = 3

_CANONICAL_ENV = "SITEMAP_CANONICAL_DOMAIN"
_BARE_ENV = "SITEMAP_BARE_DOMAIN"
_MAPPINGS_ENV = "SITEMAP_PATH_MAPPINGS"
_SOURCES_ENV = "SITEMAP_SOURCE_URLS"
_PROTECTED_PATHS_ENV = "SITEMAP_PROTECTED_PATHS"
_PROTECTED_PATTERNS_ENV = "SITEMAP_PROTECTED_PATTERNS"
_DEDUP_PREFIX_ENV = "SITEMAP_DEDUP_PREFIX"
_TIMEOUT_ENV = "SITEMAP_REQUEST_TIMEOUT"
_USER_AGENT_ENV = "SITEMAP_USER_AGENT"
_WEBHOOK_SECRETS_ENV = "SITEMAP_WEBHOOK_SECRETS"
_DATABASE_ENV = "SITEMAP_DATABASE_URL"
_CACHE_MAX_AGE_ENV = "SITEMAP_CACHE_MAX_AGE"
_BROKER_ENV = "SITEMAP_CELERY_BROKER_URL"
_RESULT_BACKEND_ENV = "SITEMAP_CELERY_RESULT_BACKEND"
_ALWAYS_EAGER_ENV = "SITEMAP_CELERY_TASK_ALWAYS_EAGER"


@dataclass(frozen=True, slots=True)
class DomainMapping:
    """Nests a source subdomain's path space under ``/{path_prefix}``."""

    path_prefix: str
    subdomain: str


@dataclass(slots=True)
class SourceConfig:
    name: str
    url: str


@dataclass(slots=True)
class RetryConfig:
    max_attempts: int = 3
    backoff_factor: float = 1.5
    base_delay: float = 1.0


@dataclass(slots=True)
class TimeoutConfig:
    request_timeout: float = 10.0


@dataclass(slots=True)
class ProtectedPathConfig:
    """Paths kept in both canonical and prefixed form, plus dedupe exemptions."""

    prefix: str
    paths: tuple[str, ...] = ("/",)
    patterns: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        self.prefix = self.prefix.strip().strip("/")
        if not self.prefix:
            raise ValueError("Protected path prefix must not be empty")
        self.paths = tuple(normalize_path(path) for path in self.paths)

    @property
    def prefix_root(self) -> str:
        return f"/{self.prefix}"

    def all_paths(self) -> tuple[str, ...]:
        paths = list(self.paths)
        if self.prefix_root not in paths:
            paths.append(self.prefix_root)
        return tuple(paths)

    def is_protected(self, path: str) -> bool:
        return normalize_path(path) in self.all_paths()

    def matches_pattern(self, path: str) -> bool:
        return any(path.startswith(pattern) for pattern in self.patterns)


@dataclass(slots=True)
class WebhookConfig:
    secrets: tuple[str, ...] = ()
    signature_header: str = "x-webflow-signature"


@dataclass(slots=True)
class CacheConfig:
    db_url: str = "sqlite://"
    key: str = DEFAULT_CACHE_KEY
    max_age: float = DEFAULT_CACHE_MAX_AGE


@dataclass(slots=True)
class QueueConfig:
    """Celery transport settings; unset URLs are derived from the cache database."""

    broker_url: Optional[str] = None
    result_backend: Optional[str] = None
    always_eager: bool = True


@dataclass(slots=True)
class MergeConfig:
    canonical_domain: str
    mappings: tuple[DomainMapping, ...]
    sources: tuple[SourceConfig, ...]
    protected: ProtectedPathConfig
    bare_domain: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    max_index_depth: int = DEFAULT_MAX_INDEX_DEPTH
    retry: RetryConfig = field(default_factory=RetryConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)

    def __post_init__(self) -> None:
        self.canonical_domain = self.canonical_domain.strip().lower()
        if not self.canonical_domain:
            raise ValueError("Canonical domain must not be empty")
        if self.bare_domain is None:
            self.bare_domain = derive_bare_domain(self.canonical_domain)

    @property
    def base_url(self) -> str:
        return f"https://{self.canonical_domain}"

    @property
    def source_subdomains(self) -> tuple[str, ...]:
        return tuple(mapping.subdomain for mapping in self.mappings)


def derive_bare_domain(canonical_domain: str) -> Optional[str]:
    if canonical_domain.startswith("www."):
        return canonical_domain[len("www."):]
    return None


def parse_path_mappings(raw_value: str) -> tuple[DomainMapping, ...]:
    """Parse ``"prefix:subdomain, prefix2:subdomain2"`` into ordered mappings."""

    mappings: list[DomainMapping] = []
    if not raw_value:
        return ()
    for part in raw_value.split(","):
        cleaned = part.strip()
        if not cleaned or ":" not in cleaned:
            continue
        prefix, subdomain = cleaned.split(":", 1)
        prefix = prefix.strip().strip("/")
        subdomain = subdomain.strip().lower()
        if prefix and subdomain:
            mappings.append(DomainMapping(path_prefix=prefix, subdomain=subdomain))
    return tuple(mappings)


def parse_source_urls(raw_value: str) -> tuple[SourceConfig, ...]:
    sources: list[SourceConfig] = []
    for part in (raw_value or "").split(","):
        cleaned = part.strip()
        if not cleaned:
            continue
        if "=" not in cleaned:
            raise ValueError(f"Source entry must be NAME=URL (got {part!r})")
        name, url = cleaned.split("=", 1)
        if not name.strip() or not url.strip():
            raise ValueError(f"Source entry must be NAME=URL (got {part!r})")
        sources.append(SourceConfig(name=name.strip(), url=url.strip()))
    return tuple(sources)


def _split_list(raw_value: Optional[str]) -> tuple[str, ...]:
    if not raw_value:
        return ()
    return tuple(item.strip() for item in raw_value.split(",") if item.strip())


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as exc:
        raise ValueError(f"Invalid value {value!r} for {name}") from exc


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def load_cache_config(environ: Optional[Mapping[str, str]] = None) -> CacheConfig:
    env = os.environ if environ is None else environ
    return CacheConfig(
        db_url=env.get(_DATABASE_ENV) or CacheConfig().db_url,
        max_age=_env_float(env, _CACHE_MAX_AGE_ENV, DEFAULT_CACHE_MAX_AGE),
    )


def load_queue_config(environ: Optional[Mapping[str, str]] = None) -> QueueConfig:
    env = os.environ if environ is None else environ
    return QueueConfig(
        broker_url=(env.get(_BROKER_ENV) or "").strip() or None,
        result_backend=(env.get(_RESULT_BACKEND_ENV) or "").strip() or None,
        always_eager=_env_bool(env, _ALWAYS_EAGER_ENV, QueueConfig().always_eager),
    )


def load_merge_config(environ: Optional[Mapping[str, str]] = None) -> MergeConfig:
    """Build a :class:`MergeConfig` from ``SITEMAP_*`` environment variables."""

    env = os.environ if environ is None else environ

    canonical = env.get(_CANONICAL_ENV, "")
    if not canonical.strip():
        raise ValueError(f"{_CANONICAL_ENV} must be set")

    mappings = parse_path_mappings(env.get(_MAPPINGS_ENV, ""))
    sources = parse_source_urls(env.get(_SOURCES_ENV, ""))
    if not sources:
        raise ValueError(f"{_SOURCES_ENV} must list at least one NAME=URL source")

    dedup_prefix = (env.get(_DEDUP_PREFIX_ENV) or "").strip().strip("/")
    if not dedup_prefix:
        if not mappings:
            raise ValueError(f"{_DEDUP_PREFIX_ENV} or {_MAPPINGS_ENV} must be set")
        dedup_prefix = mappings[0].path_prefix

    protected = ProtectedPathConfig(
        prefix=dedup_prefix,
        paths=_split_list(env.get(_PROTECTED_PATHS_ENV)) or ("/",),
        patterns=_split_list(env.get(_PROTECTED_PATTERNS_ENV)),
    )

    bare = (env.get(_BARE_ENV) or "").strip().lower() or None

    return MergeConfig(
        canonical_domain=canonical,
        mappings=mappings,
        sources=sources,
        protected=protected,
        bare_domain=bare,
        user_agent=env.get(_USER_AGENT_ENV) or DEFAULT_USER_AGENT,
        timeout=TimeoutConfig(
            request_timeout=_env_float(env, _TIMEOUT_ENV, TimeoutConfig().request_timeout)
        ),
        webhook=WebhookConfig(secrets=_split_list(env.get(_WEBHOOK_SECRETS_ENV))),
        cache=load_cache_config(env),
        queue=load_queue_config(env),
    )
