"""Text extraction contract and the plain-text extractor."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

LOGGER = logging.getLogger(__name__)

SUPPORTED_TEXT_SUFFIXES = frozenset({".txt", ".md", ".text", ""})


class DocumentExtractionError(ValueError):
    """Raised when an upload cannot be turned into text."""


@dataclass(frozen=True, slots=True)
class ExtractedText:
    """Raw text handed over by an extractor together with its file name."""

    text: str
    file_name: str


class TextExtractor(Protocol):
    """Contract for collaborators turning uploaded bytes into raw text."""

    def extract(self, data: bytes, file_name: str) -> ExtractedText:
        """Return the raw text of ``data``."""


class PlainTextExtractor:
    """Extract text from plaintext documents, trying each encoding in turn."""

    def __init__(self, encodings: Sequence[str] = ("utf-8", "latin-1")) -> None:
        self.encodings = tuple(encodings)

    def extract(self, data: bytes, file_name: str) -> ExtractedText:
        suffix = Path(file_name or "").suffix.lower()
        if suffix not in SUPPORTED_TEXT_SUFFIXES:
            raise DocumentExtractionError(
                f"Unsupported file format: {suffix}. Upload plain text or extract the text upstream."
            )
        if not data:
            raise DocumentExtractionError("File is empty")

        for encoding in self.encodings:
            try:
                text = data.decode(encoding)
            except UnicodeDecodeError:
                LOGGER.debug("Could not decode %s as %s", file_name, encoding)
                continue
            LOGGER.info("Extracted %s characters from %s", len(text), file_name)
            return ExtractedText(text=text, file_name=Path(file_name).name or "upload.txt")

        raise DocumentExtractionError(f"Unable to decode {file_name} as text")
