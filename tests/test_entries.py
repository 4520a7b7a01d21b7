import unittest

from sitemap_merger.entries import SitemapEntry, normalize_path, prefix_path


class NormalizePathTestCase(unittest.TestCase):
    def test_strips_all_trailing_slashes(self) -> None:
        self.assertEqual(normalize_path("/a/"), "/a")
        self.assertEqual(normalize_path("/a//"), "/a")
        self.assertEqual(normalize_path("/a/b///"), "/a/b")

    def test_root_is_a_fixed_point(self) -> None:
        for path in ("", "/", "//", "///"):
            with self.subTest(path=path):
                self.assertEqual(normalize_path(path), "/")

    def test_normalization_is_idempotent(self) -> None:
        for path in ("", "/", "//", "/a", "/a/", "/a//", "/a/b/", "/a//b//", "/city/venues///"):
            with self.subTest(path=path):
                once = normalize_path(path)
                self.assertEqual(normalize_path(once), once)

    def test_entry_normalized_path(self) -> None:
        entry = SitemapEntry(location="https://www.example.com/venues//?page=2")
        self.assertEqual(entry.path, "/venues//")
        self.assertEqual(entry.normalized_path, "/venues")


class PrefixPathTestCase(unittest.TestCase):
    def test_root_maps_to_prefix_root(self) -> None:
        self.assertEqual(prefix_path("city", "/"), "/city")
        self.assertEqual(prefix_path("city", ""), "/city")
        self.assertEqual(prefix_path("city", "//"), "/city")

    def test_nests_path(self) -> None:
        self.assertEqual(prefix_path("city", "/fleet"), "/city/fleet")
        self.assertEqual(prefix_path("city", "fleet"), "/city/fleet")


if __name__ == "__main__":
    unittest.main()
