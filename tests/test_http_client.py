import unittest
from collections import deque
from unittest.mock import MagicMock

import httpx

from sitemap_merger.config import RetryConfig, TimeoutConfig
from sitemap_merger.http_client import FetchError, SitemapFetcher


class SitemapFetcherTestCase(unittest.TestCase):
    def _fetcher(self, handler, *, attempts: int = 3) -> tuple[SitemapFetcher, list[float]]:
        delays: list[float] = []
        fetcher = SitemapFetcher(
            transport=httpx.MockTransport(handler),
            retry=RetryConfig(max_attempts=attempts, backoff_factor=2.0, base_delay=0.5),
            timeout=TimeoutConfig(request_timeout=1.0),
            sleep=delays.append,
        )
        return fetcher, delays

    def test_returns_document_text_and_sends_user_agent(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            self.assertEqual(request.headers["User-Agent"], "sitemap-merger/1.0")
            return httpx.Response(200, text="<urlset/>", headers={"content-type": "application/xml"})

        fetcher, delays = self._fetcher(handler)
        try:
            self.assertEqual(fetcher.fetch_text("https://www.example.com/sitemap.xml"), "<urlset/>")
        finally:
            fetcher.close()
        self.assertEqual(delays, [])

    def test_client_error_is_not_retried(self) -> None:
        calls = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(404)

        fetcher, delays = self._fetcher(handler)
        try:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch_text("https://city.example.com/sitemap.xml")
        finally:
            fetcher.close()

        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(len(calls), 1)
        self.assertEqual(delays, [])

    def test_server_error_retries_with_backoff_then_fails(self) -> None:
        calls = deque()

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(str(request.url))
            return httpx.Response(500)

        fetcher, delays = self._fetcher(handler)
        try:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch_text("https://city.example.com/sitemap.xml")
        finally:
            fetcher.close()

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(len(calls), 3)
        self.assertEqual(delays, [0.5, 1.0])

    def test_recovers_after_transient_failure(self) -> None:
        responses = deque([httpx.Response(503), httpx.Response(200, text="<urlset/>")])

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.popleft()

        fetcher, delays = self._fetcher(handler)
        try:
            self.assertEqual(fetcher.fetch_text("https://www.example.com/sitemap.xml"), "<urlset/>")
        finally:
            fetcher.close()
        self.assertEqual(len(delays), 1)

    def test_any_2xx_status_is_success(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(203, text="<urlset/>")

        fetcher, delays = self._fetcher(handler)
        try:
            self.assertEqual(fetcher.fetch_text("https://www.example.com/sitemap.xml"), "<urlset/>")
        finally:
            fetcher.close()
        self.assertEqual(delays, [])

    def test_invalid_url_surfaces_as_fetch_error(self) -> None:
        for exc in (httpx.InvalidURL("Invalid port"), ValueError("unknown url type")):
            client = MagicMock()
            client.get.side_effect = exc
            delays: list[float] = []
            fetcher = SitemapFetcher(client=client, sleep=delays.append)

            with self.subTest(exc=exc), self.assertRaises(FetchError) as ctx:
                fetcher.fetch_text("https://:80/b.xml")

            self.assertIs(ctx.exception.__cause__, exc)
            self.assertEqual(client.get.call_count, 1)
            self.assertEqual(delays, [])

    def test_timeout_surfaces_as_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fetcher, _ = self._fetcher(handler, attempts=1)
        try:
            with self.assertRaises(FetchError) as ctx:
                fetcher.fetch_text("https://www.example.com/sitemap.xml")
        finally:
            fetcher.close()

        self.assertIsNone(ctx.exception.status_code)
        self.assertIsInstance(ctx.exception.__cause__, httpx.TimeoutException)


if __name__ == "__main__":
    unittest.main()
