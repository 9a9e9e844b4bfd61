"""
Text normalization utilities for exported chat messages.

Handles invisible characters, special spaces and control characters that
chat exports carry over from the web UI.
"""

import re
from typing import Optional


class TextNormalizer:
    """Normalizes message text before it is split into blocks."""

    # Characters that render invisibly or inconsistently across fonts
    SPECIAL_CHARS = {
        '\u00a0': ' ',      # Non-breaking space → regular space
        '\u2009': ' ',      # Thin space → regular space
        '\u2007': ' ',      # Figure space → regular space
        '\u202f': ' ',      # Narrow no-break space → regular space
        '\u200b': '',       # Zero-width space → remove
        '\u200c': '',       # Zero-width non-joiner → remove
        '\u200d': '',       # Zero-width joiner → remove
        '\u2060': '',       # Word joiner → remove
        '\ufeff': '',       # Byte order mark → remove
        '\u00ad': '',       # Soft hyphen → remove
        '\u2011': '-',      # Non-breaking hyphen → regular hyphen
    }

    WHITESPACE_PATTERN = re.compile(r'[ \t]+')

    # Control characters except tabs, newlines and carriage returns
    CONTROL_CHARS_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]')

    def __init__(self, preserve_whitespace: bool = True):
        """Initialize text normalizer.

        Args:
            preserve_whitespace: If True, keep spacing and line breaks as written.
                                If False, collapse runs of spaces and tabs.
        """
        self.preserve_whitespace = preserve_whitespace

    def normalize_text(self, text: Optional[str]) -> str:
        """Normalize a message part; ``None`` becomes an empty string."""
        if not text:
            return ""

        normalized = text.replace('\r\n', '\n').replace('\r', '\n')
        normalized = self._replace_special_chars(normalized)
        normalized = self._remove_control_chars(normalized)

        if not self.preserve_whitespace:
            normalized = self._normalize_whitespace(normalized)

        return normalized

    def is_blank(self, text: Optional[str]) -> bool:
        return not self.normalize_text(text).strip()

    def _replace_special_chars(self, text: str) -> str:
        for original, replacement in self.SPECIAL_CHARS.items():
            text = text.replace(original, replacement)
        return text

    def _remove_control_chars(self, text: str) -> str:
        return self.CONTROL_CHARS_PATTERN.sub('', text)

    def _normalize_whitespace(self, text: str) -> str:
        lines = [self.WHITESPACE_PATTERN.sub(' ', line).strip() for line in text.split('\n')]
        return '\n'.join(lines).strip()


def normalize_message_text(text: Optional[str], preserve_whitespace: bool = True) -> str:
    """Convenience wrapper around :class:`TextNormalizer`."""
    return TextNormalizer(preserve_whitespace=preserve_whitespace).normalize_text(text)
