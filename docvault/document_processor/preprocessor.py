"""
Text cleanup for extracted document content.

Extracted text is stored in a PostgreSQL text column, which rejects NUL
bytes, and is later searched and keyword-matched, so the cleanup focuses on
removing non-printing characters and collapsing layout whitespace.
"""

import re
import unicodedata

from docvault.utils.logging import get_logger

logger = get_logger(__name__)

# Control characters other than tab, newline and carriage return
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRAILING_SPACES = re.compile(r"[ \t]+\n")
_BLANK_RUNS = re.compile(r"\n{3,}")


class TextPreprocessor:
    """Clean and normalize text recovered from documents."""

    def __init__(
        self,
        normalize_unicode: bool = True,
        collapse_blank_lines: bool = True,
    ) -> None:
        """
        Initialize the text preprocessor.

        Args:
            normalize_unicode: Apply NFC normalization
            collapse_blank_lines: Squeeze runs of blank lines into one
        """
        self.normalize_unicode = normalize_unicode
        self.collapse_blank_lines = collapse_blank_lines

    def preprocess(self, text: str) -> str:
        """
        Preprocess text with all configured cleaning steps.

        Args:
            text: Raw extracted text

        Returns:
            Cleaned text (empty string for empty input)
        """
        if not text:
            return ""

        if self.normalize_unicode:
            text = unicodedata.normalize("NFC", text)

        text = text.replace("\r\n", "\n").replace("\r", "\n")

        removed = len(_CONTROL_CHARS.findall(text))
        if removed:
            logger.debug(f"Removed {removed} control characters")
            text = _CONTROL_CHARS.sub("", text)

        text = _TRAILING_SPACES.sub("\n", text)

        if self.collapse_blank_lines:
            text = _BLANK_RUNS.sub("\n\n", text)

        return text.strip()
