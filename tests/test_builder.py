import unittest
import xml.etree.ElementTree as ET

from sitemap_merger.builder import (
    MAX_URLS_PER_SITEMAP,
    SITEMAP_NAMESPACE,
    SitemapBuilder,
    escape_xml,
    prepare_entries,
)
from sitemap_merger.entries import SitemapEntry

BASE = "https://www.example.com"
NS = {"sm": SITEMAP_NAMESPACE}


class SitemapBuilderTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.builder = SitemapBuilder("www.example.com")

    def test_escape_xml_handles_all_five_entities(self) -> None:
        self.assertEqual(escape_xml("""a&b<c>d"e'f"""), "a&amp;b&lt;c&gt;d&quot;e&apos;f")

    def test_prepare_entries_sorts_and_collapses_trailing_slashes(self) -> None:
        entries = [
            SitemapEntry(location=f"{BASE}/b/"),
            SitemapEntry(location=f"{BASE}/a"),
            SitemapEntry(location=f"{BASE}/b"),
            SitemapEntry(location=f"{BASE}/"),
        ]

        prepared = prepare_entries(entries)

        self.assertEqual([entry.location for entry in prepared], [f"{BASE}/", f"{BASE}/a", f"{BASE}/b/"])

    def test_prepare_entries_collapses_repeated_trailing_slashes(self) -> None:
        prepared = prepare_entries(
            [
                SitemapEntry(location=f"{BASE}/a"),
                SitemapEntry(location=f"{BASE}/a//"),
                SitemapEntry(location=f"{BASE}/a/"),
            ]
        )

        self.assertEqual([entry.location for entry in prepared], [f"{BASE}/a"])

    def test_urlset_document(self) -> None:
        document = self.builder.build(
            [
                SitemapEntry(location=f"{BASE}/search?q=a&b", last_modified="2024-05-01", priority="0.5"),
                SitemapEntry(location=f"{BASE}/about", change_frequency="monthly"),
            ]
        )

        self.assertTrue(document.startswith('<?xml version="1.0" encoding="UTF-8"?>\n<urlset'))
        self.assertIn("<loc>https://www.example.com/search?q=a&amp;b</loc>", document)
        root = ET.fromstring(document)
        urls = root.findall("sm:url", NS)
        self.assertEqual(
            [url.findtext("sm:loc", namespaces=NS) for url in urls],
            [f"{BASE}/about", f"{BASE}/search?q=a&b"],
        )
        self.assertEqual(urls[0].findtext("sm:changefreq", namespaces=NS), "monthly")
        self.assertIsNone(urls[0].find("sm:lastmod", NS))
        self.assertEqual(urls[1].findtext("sm:lastmod", namespaces=NS), "2024-05-01")
        self.assertEqual(urls[1].findtext("sm:priority", namespaces=NS), "0.5")

    def test_exactly_the_limit_stays_a_single_urlset(self) -> None:
        builder = SitemapBuilder("www.example.com", max_urls=3)
        entries = [SitemapEntry(location=f"{BASE}/p{i}") for i in range(3)]
        self.assertEqual(builder.page_count(entries), 1)
        self.assertIn("<urlset", builder.build(entries))

    def test_large_input_becomes_a_sitemap_index(self) -> None:
        entries = [SitemapEntry(location=f"{BASE}/p{i:06d}") for i in range(MAX_URLS_PER_SITEMAP + 1)]

        document = self.builder.build(entries)

        root = ET.fromstring(document)
        self.assertEqual(root.tag, f"{{{SITEMAP_NAMESPACE}}}sitemapindex")
        self.assertEqual(
            [loc.text for loc in root.iterfind("sm:sitemap/sm:loc", NS)],
            [f"{BASE}/sitemap-1.xml", f"{BASE}/sitemap-2.xml"],
        )
        self.assertEqual(self.builder.page_count(entries), 2)

        first = ET.fromstring(self.builder.build_page(entries, 1))
        second = ET.fromstring(self.builder.build_page(entries, 2))
        self.assertEqual(len(first.findall("sm:url", NS)), MAX_URLS_PER_SITEMAP)
        self.assertEqual(len(second.findall("sm:url", NS)), 1)
        self.assertEqual(second.findtext("sm:url/sm:loc", namespaces=NS), f"{BASE}/p{MAX_URLS_PER_SITEMAP:06d}")

    def test_build_page_out_of_range(self) -> None:
        entries = [SitemapEntry(location=f"{BASE}/a")]
        with self.assertRaises(IndexError):
            self.builder.build_page(entries, 2)


if __name__ == "__main__":
    unittest.main()
