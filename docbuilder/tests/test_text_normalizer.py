"""Test cases for message text normalization."""

import unittest

from docbuilder.utils.text_normalizer import TextNormalizer, normalize_message_text


class TextNormalizerTest(unittest.TestCase):
    """Test text normalization utilities."""

    def setUp(self):
        """Set up test fixtures."""
        self.normalizer = TextNormalizer(preserve_whitespace=False)
        self.preserve_normalizer = TextNormalizer(preserve_whitespace=True)

    def test_special_character_replacement(self):
        """Test replacement of special Unicode characters."""
        test_cases = [
            ('a\u00a0b', 'a b'),       # Non-breaking space
            ('text\u2009word', 'text word'),  # Thin space between words
            ('\u200bzero', 'zero'),    # Zero-width space
            ('soft\u00adhyphen', 'softhyphen'),
            ('\ufeffbom', 'bom'),
            ('non\u2011breaking', 'non-breaking'),
        ]
        for original, expected in test_cases:
            with self.subTest(original=original):
                self.assertEqual(self.preserve_normalizer.normalize_text(original), expected)

    def test_control_characters_removed(self):
        """Control characters vanish but tabs and newlines survive."""
        self.assertEqual(self.preserve_normalizer.normalize_text("a\x00b\x07c\td\ne"), "abc\td\ne")

    def test_line_endings_unified(self):
        self.assertEqual(self.preserve_normalizer.normalize_text("one\r\ntwo\rthree"), "one\ntwo\nthree")

    def test_whitespace_preserved_by_default(self):
        text = "def f():\n    return  1"
        self.assertEqual(normalize_message_text(text), text)

    def test_whitespace_collapsed_when_requested(self):
        self.assertEqual(self.normalizer.normalize_text("  many   spaces\t here \n next  "), "many spaces here\nnext")

    def test_empty_and_blank_input(self):
        self.assertEqual(self.preserve_normalizer.normalize_text(None), "")
        self.assertEqual(self.preserve_normalizer.normalize_text(""), "")
        self.assertTrue(self.preserve_normalizer.is_blank(" \u200b\n "))
        self.assertFalse(self.preserve_normalizer.is_blank("x"))


if __name__ == '__main__':
    unittest.main()
