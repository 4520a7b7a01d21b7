"""HTTP utilities for fetching source sitemap documents."""

from __future__ import annotations

import logging
import time
from typing import Callable

import httpx

from .config import RetryConfig, TimeoutConfig, DEFAULT_USER_AGENT

LOGGER = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """Raised when a sitemap document cannot be retrieved."""

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class SitemapFetcher:
    """Thread-safe httpx wrapper returning document text for a URL."""

    def __init__(
        self,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: TimeoutConfig | None = None,
        retry: RetryConfig | None = None,
        client: httpx.Client | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout or TimeoutConfig()
        self._retry = retry or RetryConfig()
        self._transport = transport
        self._client = client or self._build_client()
        self._owns_client = client is None
        self._sleep = sleep or time.sleep

    def _build_client(self) -> httpx.Client:
        kwargs: dict[str, object] = {
            "timeout": self._timeout.request_timeout,
            "headers": {"User-Agent": self._user_agent},
            "follow_redirects": True,
        }
        if self._transport:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def fetch_text(self, url: str) -> str:
        max_attempts = max(1, self._retry.max_attempts)
        for attempt in range(1, max_attempts + 1):
            try:
                response = self._client.get(url)
            except httpx.TimeoutException as exc:
                error = FetchError(f"Timed out fetching {url}: {exc}", url=url)
                error.__cause__ = exc
            except httpx.HTTPError as exc:
                error = FetchError(f"Transport error fetching {url}: {exc}", url=url)
                error.__cause__ = exc
            except (httpx.InvalidURL, ValueError) as exc:
                raise FetchError(f"Invalid sitemap URL {url!r}: {exc}", url=url) from exc
            else:
                if response.is_success:
                    return response.text
                error = FetchError(
                    f"HTTP {response.status_code} when fetching {url}",
                    url=url,
                    status_code=response.status_code,
                )
                if response.status_code < 500:
                    raise error

            if attempt >= max_attempts:
                raise error
            delay = self._retry.base_delay * (self._retry.backoff_factor ** (attempt - 1))
            LOGGER.warning(
                "Attempt %d/%d failed for %s: %s; retrying in %.1fs",
                attempt,
                max_attempts,
                url,
                error,
                delay,
            )
            self._sleep(delay)

        raise FetchError(f"Exhausted retries while fetching {url}", url=url)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SitemapFetcher":
        return self

    def __exit__(self, *_exc_info) -> None:
        self.close()
