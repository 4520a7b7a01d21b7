"""Merge subdomain sitemaps into a single canonical-domain sitemap."""

from .merge import MergeResult, SitemapMerger

__all__ = ["MergeResult", "SitemapMerger"]
