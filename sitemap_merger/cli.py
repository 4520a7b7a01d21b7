"""Command-line entrypoint for merging and serving sitemaps."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

from .cache import SitemapCache, session_factory_for
from .config import load_merge_config
from .merge import SitemapMerger
from .validation import NoValidEntriesError

LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Merge subdomain sitemaps into one canonical-domain sitemap",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    merge = subparsers.add_parser("merge", help="Fetch all sources and write the merged sitemap")
    merge.add_argument(
        "--output",
        type=Path,
        default=None,
        help="File to write the merged sitemap to (default: stdout)",
    )
    merge.add_argument(
        "--report",
        type=Path,
        default=None,
        help="Optional path for a JSON breakdown of the merge",
    )

    serve = subparsers.add_parser("serve", help="Serve /sitemap.xml with caching and webhook invalidation")
    serve.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8787, help="Port to listen on (default: 8787)")
    serve.add_argument(
        "--db-url",
        dest="db_url",
        default=None,
        help="SQLAlchemy database URL for the sitemap cache (defaults to SITEMAP_DATABASE_URL)",
    )
    return parser


def run_merge(output: Optional[Path], report_path: Optional[Path]) -> int:
    config = load_merge_config()
    try:
        with SitemapMerger(config) as merger:
            result = merger.merge()
    except NoValidEntriesError as exc:
        LOGGER.error("Unable to generate sitemap: %s", exc)
        return 1

    if output is None:
        sys.stdout.write(result.document + "\n")
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(result.document + "\n", encoding="utf-8")
        for number, page in enumerate(result.pages, start=1):
            output.with_name(f"sitemap-{number}.xml").write_text(page + "\n", encoding="utf-8")
        LOGGER.info("Wrote merged sitemap to %s", output)

    if report_path is not None:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(
            json.dumps(result.report.as_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
        LOGGER.info("Wrote merge report to %s", report_path)
    return 0


def run_server(host: str, port: int, db_url: Optional[str]) -> int:
    from .celery_app import celery_app, configure_celery_app
    from .server import SitemapService, serve
    from .tasks import regenerate_sitemap_task

    config = load_merge_config()
    if db_url:
        config.cache.db_url = db_url
    configure_celery_app(celery_app, config.cache, config.queue)
    cache = SitemapCache(
        session_factory_for(config.cache.db_url),
        key=config.cache.key,
        max_age=config.cache.max_age,
    )
    merger = SitemapMerger(config)
    service = SitemapService(
        cache,
        merger.merge,
        webhook=config.webhook,
        on_invalidate=lambda: regenerate_sitemap_task.delay({"SITEMAP_DATABASE_URL": config.cache.db_url}),
    )
    try:
        serve(service, host=host, port=port)
    finally:
        service.close()
        merger.close()
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        if args.command == "merge":
            return run_merge(args.output, args.report)
        return run_server(args.host, args.port, args.db_url)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
