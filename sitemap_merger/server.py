"""Request routing for the merged sitemap and its invalidation webhook."""

from __future__ import annotations

import http.server
import logging
import re
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional
from urllib.parse import urlparse

from .cache import SitemapCache, regeneration_lock
from .config import WebhookConfig
from .merge import MergeResult
from .webhooks import (
    WebhookPayloadError,
    decode_webhook_payload,
    select_webhook_secret,
    verify_signature,
)

LOGGER = logging.getLogger(__name__)

SITEMAP_PATH = "/sitemap.xml"
WEBHOOK_PATH = "/webhook/sitemap-invalidate"
_PAGE_RE = re.compile(r"^/sitemap-(\d+)\.xml$")

_XML_HEADERS = {
    "Content-Type": "application/xml; charset=utf-8",
    "Cache-Control": "public, max-age=3600",
}
_TEXT_HEADERS = {"Content-Type": "text/plain; charset=utf-8"}


@dataclass(slots=True)
class HttpResponse:
    status: int
    body: str
    headers: dict[str, str] = field(default_factory=lambda: dict(_TEXT_HEADERS))


def _text(status: int, body: str) -> HttpResponse:
    return HttpResponse(status=status, body=body, headers=dict(_TEXT_HEADERS))


class SitemapService:
    """Serves cached sitemaps, regenerating on a miss, and handles invalidation."""

    def __init__(
        self,
        cache: SitemapCache,
        generate: Callable[[], MergeResult],
        *,
        webhook: WebhookConfig | None = None,
        on_invalidate: Callable[[], object] | None = None,
    ) -> None:
        self._cache = cache
        self._generate = generate
        self._webhook = webhook or WebhookConfig()
        self._on_invalidate = on_invalidate
        self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sitemap-invalidate")

    def close(self) -> None:
        """Wait for scheduled post-invalidation work to finish."""

        self._background.shutdown(wait=True)

    def handle(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        body: bytes = b"",
    ) -> HttpResponse:
        route = urlparse(path).path
        method = method.upper()
        LOGGER.info("[%s] %s", method, route)

        if route == WEBHOOK_PATH and method == "POST":
            return self.handle_webhook(headers or {}, body)
        if method != "GET":
            return _text(404, "Not Found")
        if route == SITEMAP_PATH:
            return self.handle_sitemap()
        match = _PAGE_RE.match(route)
        if match:
            return self.handle_page(int(match.group(1)))
        return _text(404, "Not Found")

    def handle_sitemap(self) -> HttpResponse:
        cached = self._cache.get()
        if cached is not None:
            return HttpResponse(status=200, body=cached.document, headers=dict(_XML_HEADERS))
        LOGGER.info("Cache miss or expired; generating fresh sitemap")
        try:
            document = self._regenerate()
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("Unable to generate sitemap: %s", exc)
            return _text(503, f"Service Unavailable: unable to generate sitemap\n\nError: {exc}")
        return HttpResponse(status=200, body=document, headers=dict(_XML_HEADERS))

    def handle_page(self, page: int) -> HttpResponse:
        cached = self._cache.get(page=page)
        if cached is None:
            main = self._cache.get()
            if main is None:
                try:
                    self._regenerate()
                except Exception as exc:  # noqa: BLE001
                    LOGGER.error("Unable to generate sitemap page %d: %s", page, exc)
                    return _text(503, f"Service Unavailable: unable to generate sitemap\n\nError: {exc}")
                main = self._cache.get()
            cached = self._cache.get(page=page)
            if cached is None and main is not None and main.page_count == 1 and page == 1:
                cached = main
        if cached is None:
            return _text(404, "Not Found")
        return HttpResponse(status=200, body=cached.document, headers=dict(_XML_HEADERS))

    def handle_webhook(self, headers: Mapping[str, str], body: bytes) -> HttpResponse:
        lowered = {key.lower(): value for key, value in headers.items()}
        signature = lowered.get(self._webhook.signature_header.lower())
        if not signature:
            LOGGER.warning("Webhook request missing signature")
            return _text(401, "Unauthorized")

        try:
            event = decode_webhook_payload(body)
        except WebhookPayloadError as exc:
            LOGGER.warning("Rejected webhook payload: %s", exc)
            return _text(400, "Bad Request")

        secret = select_webhook_secret(self._webhook)
        if secret is None:
            LOGGER.warning("No webhook secret configured; accepting unsigned publish event")
        elif not verify_signature(body, signature, secret):
            LOGGER.warning("Invalid webhook signature")
            return _text(401, "Unauthorized")

        LOGGER.info("Site publish event received: site_id=%s published=%s", event.site_id, event.published_at)
        self._cache.invalidate()
        if self._on_invalidate is not None:
            self._background.submit(self._on_invalidate).add_done_callback(_log_background_failure)
        return _text(200, "OK")

    def _regenerate(self) -> str:
        with regeneration_lock(self._cache.key):
            cached = self._cache.get()
            if cached is not None:
                return cached.document
            result = self._generate()
            self._cache.put(result.document, pages=result.pages)
            return result.document


def _log_background_failure(future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Failed to schedule sitemap regeneration: %s", exc)


class SitemapRequestHandler(http.server.BaseHTTPRequestHandler):
    """Adapts :class:`SitemapService` to :mod:`http.server`."""

    service: Optional[SitemapService] = None

    def _dispatch(self, method: str) -> None:
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        response = self.service.handle(method, self.path, dict(self.headers.items()), body)
        payload = response.body.encode("utf-8")
        self.send_response(response.status)
        for name, value in response.headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def do_GET(self):
        self._dispatch("GET")

    def do_POST(self):
        self._dispatch("POST")

    def log_message(self, format, *args):
        LOGGER.debug("%s - %s", self.address_string(), format % args)


def serve(service: SitemapService, host: str = "127.0.0.1", port: int = 8787) -> None:
    SitemapRequestHandler.service = service
    with http.server.ThreadingHTTPServer((host, port), SitemapRequestHandler) as httpd:
        LOGGER.info("Serving merged sitemap on http://%s:%d%s", host, port, SITEMAP_PATH)
        try:
            httpd.serve_forever()
        except KeyboardInterrupt:
            LOGGER.info("Server stopped")
