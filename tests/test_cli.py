import json
import os
import unittest
from datetime import datetime, timezone
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import MagicMock, patch

from sitemap_merger.celery_app import celery_app, celery_settings
from sitemap_merger.cli import build_arg_parser, main
from sitemap_merger.merge import MergeReport, MergeResult
from sitemap_merger.validation import NoValidEntriesError

ENVIRON = {
    "SITEMAP_CANONICAL_DOMAIN": "www.example.com",
    "SITEMAP_PATH_MAPPINGS": "city:city.example.com",
    "SITEMAP_SOURCE_URLS": "main=https://www.example.com/sitemap.xml",
}


def _result(pages=None) -> MergeResult:
    report = MergeReport(generated_at=datetime(2024, 6, 1, tzinfo=timezone.utc).isoformat(), final_count=3)
    return MergeResult(document="<urlset/>", entries=[], report=report, pages=list(pages or []))


class ArgParserTestCase(unittest.TestCase):
    def test_serve_defaults(self) -> None:
        args = build_arg_parser().parse_args(["--log-level", "debug", "serve"])
        self.assertEqual(args.command, "serve")
        self.assertEqual(args.port, 8787)
        self.assertEqual(args.host, "127.0.0.1")
        self.assertIsNone(args.db_url)
        self.assertEqual(args.log_level, "debug")


class MergeCommandTestCase(unittest.TestCase):
    @patch("sitemap_merger.cli.SitemapMerger")
    def test_writes_document_pages_and_report(self, merger_cls: MagicMock) -> None:
        merger_cls.return_value.__enter__.return_value.merge.return_value = _result(pages=["<a/>", "<b/>"])

        with TemporaryDirectory() as tmpdir, patch.dict(os.environ, ENVIRON, clear=True):
            output = Path(tmpdir) / "out" / "sitemap.xml"
            report = Path(tmpdir) / "report.json"
            code = main(["merge", "--output", str(output), "--report", str(report)])

            self.assertEqual(code, 0)
            self.assertEqual(output.read_text(encoding="utf-8"), "<urlset/>\n")
            self.assertEqual((output.parent / "sitemap-2.xml").read_text(encoding="utf-8"), "<b/>\n")
            data = json.loads(report.read_text(encoding="utf-8"))
            self.assertEqual(data["statistics"]["finalCount"], 3)

    @patch("sitemap_merger.cli.SitemapMerger")
    def test_merge_failure_exit_code(self, merger_cls: MagicMock) -> None:
        merger_cls.return_value.__enter__.return_value.merge.side_effect = NoValidEntriesError("nothing")

        with patch.dict(os.environ, ENVIRON, clear=True), self.assertLogs("sitemap_merger.cli", level="ERROR"):
            self.assertEqual(main(["merge"]), 1)

    def test_invalid_configuration_exit_code(self) -> None:
        with patch.dict(os.environ, {}, clear=True), self.assertLogs("sitemap_merger.cli", level="ERROR"):
            self.assertEqual(main(["merge"]), 2)


class ServeCommandTestCase(unittest.TestCase):
    @patch("sitemap_merger.server.serve")
    @patch("sitemap_merger.celery_app.configure_celery_app")
    @patch("sitemap_merger.cli.session_factory_for")
    @patch("sitemap_merger.cli.SitemapMerger")
    def test_db_url_override_reaches_celery(
        self,
        merger_cls: MagicMock,
        session_factory_for: MagicMock,
        configure: MagicMock,
        serve: MagicMock,
    ) -> None:
        with patch.dict(os.environ, ENVIRON, clear=True):
            code = main(["serve", "--port", "9000", "--db-url", "postgresql://db/sitemaps"])

        self.assertEqual(code, 0)
        session_factory_for.assert_called_once_with("postgresql://db/sitemaps")
        configure.assert_called_once()
        app, cache_config, queue_config = configure.call_args.args
        self.assertIs(app, celery_app)
        settings = celery_settings(cache_config, queue_config)
        self.assertEqual(settings["broker_url"], "sqla+postgresql://db/sitemaps")
        self.assertEqual(settings["result_backend"], "db+postgresql://db/sitemaps")
        self.assertEqual(serve.call_args.kwargs["port"], 9000)
        merger_cls.return_value.close.assert_called_once_with()


if __name__ == "__main__":
    unittest.main()
