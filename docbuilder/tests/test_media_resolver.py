"""Test cases for media reference resolution."""

import unittest
from unittest.mock import Mock

from docbuilder.parser.media_resolver import (
    MediaCatalog,
    MediaResolver,
    determine_media_type,
    extract_file_id,
)


class MediaResolverTest(unittest.TestCase):
    """Test file id extraction and folder-based URL resolution."""

    def setUp(self):
        """Set up test fixtures."""
        self.listing = Mock(return_value=["file-abc123-photo.png", "notes.txt", "file_XYZ9.webp"])
        self.resolver = MediaResolver(self.listing)

    def test_extract_file_id_from_asset_pointers(self):
        self.assertEqual(extract_file_id("file-service://file-abc123"), "file-abc123")
        self.assertEqual(extract_file_id("sediment://file_XYZ9-shot.png"), "file_XYZ9")
        self.assertEqual(extract_file_id("images/plain.png"), "plain.png")
        self.assertIsNone(extract_file_id(None))
        self.assertIsNone(extract_file_id(""))

    def test_catalog_indexes_by_id_and_filename(self):
        catalog = MediaCatalog.from_listing("conv", ["file-abc123-photo.png", "other.jpg"])
        self.assertEqual(catalog.lookup("file-abc123"), "file-abc123-photo.png")
        self.assertEqual(catalog.lookup("other.jpg"), "other.jpg")
        self.assertIsNone(catalog.lookup("file-missing"))

    def test_resolve_builds_media_url(self):
        url = self.resolver.resolve("My Chat", "file-abc123")
        self.assertEqual(url, "/api/media/My%20Chat/file-abc123-photo.png")

    def test_listing_is_cached_per_folder(self):
        self.resolver.resolve("conv", "file-abc123")
        self.resolver.resolve("conv", "file_XYZ9")
        self.listing.assert_called_once_with("conv")

        self.resolver.clear_cache("conv")
        self.resolver.resolve("conv", "file-abc123")
        self.assertEqual(self.listing.call_count, 2)

    def test_unresolvable_inputs_return_none(self):
        self.assertIsNone(self.resolver.resolve("conv", "file-nothere"))
        self.assertIsNone(self.resolver.resolve(None, "file-abc123"))
        self.assertIsNone(MediaResolver().resolve("conv", "file-abc123"))

    def test_listing_failure_is_logged_not_raised(self):
        resolver = MediaResolver(Mock(side_effect=FileNotFoundError("gone")))
        with self.assertLogs("docbuilder.parser.media_resolver", level="WARNING"):
            self.assertIsNone(resolver.resolve("conv", "file-abc123"))

    def test_registered_catalog_skips_listing(self):
        self.resolver.register(MediaCatalog.from_listing("preloaded", ["file-q1.gif"]))
        self.assertEqual(self.resolver.resolve("preloaded", "file-q1"), "/api/media/preloaded/file-q1.gif")
        self.listing.assert_not_called()

    def test_determine_media_type(self):
        self.assertEqual(determine_media_type("a.PNG"), "image")
        self.assertEqual(determine_media_type("voice.wav"), "audio")
        self.assertEqual(determine_media_type("clip.mp4"), "video")
        self.assertEqual(determine_media_type("data.bin"), "unknown")
        self.assertEqual(determine_media_type(None), "unknown")


if __name__ == '__main__':
    unittest.main()
