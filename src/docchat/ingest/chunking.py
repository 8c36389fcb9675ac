"""Chunking utilities for breaking document text into selectable segments."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)

PAGE_MARKER_RE = re.compile(r"\[PAGE\s+(\d+)\s+OF\s+(\d+)\]", re.IGNORECASE)
_PARAGRAPH_BREAK_RE = re.compile(r"\n[ \t]*\n\s*")
_WORD_RE = re.compile(r"\S+")

# Longest header suffix appended to a partial page chunk.
_PART_SUFFIX_RESERVE = len(" (Part 9999/9999)")

Span = Tuple[int, int]


@dataclass(frozen=True, slots=True)
class ChunkingConfig:
    """Chunk size tiers keyed on the total length of the document."""

    chunk_chars: int = 500
    large_chunk_chars: int = 200
    very_large_chunk_chars: int = 150
    large_document_chars: int = 100_000
    very_large_document_chars: int = 300_000
    many_pages_threshold: int = 100

    def target_for(self, text_length: int) -> int:
        """Return the chunk target for a document of ``text_length`` characters."""

        if text_length > self.very_large_document_chars:
            return max(self.very_large_chunk_chars, 1)
        if text_length > self.large_document_chars:
            return max(self.large_chunk_chars, 1)
        return max(self.chunk_chars, 1)

    def category_for(self, text_length: int) -> str:
        if text_length > self.very_large_document_chars:
            return "very_large"
        if text_length > self.large_document_chars:
            return "large"
        return "standard"


def format_page_marker(page: int, total: int) -> str:
    return f"[PAGE {page} OF {total}]"


class DocumentChunker:
    """Split normalised document text into bounded, ordered chunks.

    Documents carrying ``[PAGE n OF total]`` markers are split page by page;
    every other document is packed greedily paragraph by paragraph.
    """

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(self, text: str | None, *, target_chars: int | None = None) -> List[str]:
        if not text or not text.strip():
            LOGGER.warning("Attempted to chunk empty text")
            return []

        if target_chars is None:
            target = self.config.target_for(len(text))
        else:
            target = max(target_chars, 1)
        LOGGER.info(
            "Chunking document: size=%s category=%s target=%s",
            len(text),
            self.config.category_for(len(text)),
            target,
        )

        markers = list(PAGE_MARKER_RE.finditer(text))
        if markers:
            LOGGER.info("Document contains %s page markers, using page-aware chunking", len(markers))
            chunks = self._chunk_by_pages(text, markers, target)
        else:
            chunks = [text[start:end] for start, end in self._pack(text, _paragraph_spans(text), target)]

        LOGGER.info("Document chunked into %s chunks", len(chunks))
        return chunks

    def _chunk_by_pages(self, text: str, markers: List[re.Match[str]], target: int) -> List[str]:
        chunks: List[str] = []

        # Text ahead of the first marker belongs to no page but must not be lost.
        preamble = _paragraph_spans(text, 0, markers[0].start())
        chunks.extend(text[start:end] for start, end in self._pack(text, preamble, target))

        page_target = target
        if len(markers) > self.config.many_pages_threshold:
            page_target = max(target // 2, 1)
            LOGGER.info("Document has %s pages; halving page chunk target to %s", len(markers), page_target)

        seen_pages: set[int] = set()
        declared_total = 0
        for position, match in enumerate(markers):
            page, total = int(match.group(1)), int(match.group(2))
            seen_pages.add(page)
            declared_total = max(declared_total, total)
            marker = format_page_marker(page, total)

            body_start = match.end()
            body_end = markers[position + 1].start() if position + 1 < len(markers) else len(text)
            body = text[body_start:body_end].strip()

            if not body or len(marker) + 2 + len(body) <= page_target:
                chunks.append(f"{marker}\n\n{body}" if body else marker)
                continue

            effective = _part_body_chars(page_target, marker)
            spans = self._pack(text, _paragraph_spans(text, body_start, body_end), effective)
            LOGGER.debug("Split page %s into %s parts", page, len(spans))
            for part, (start, end) in enumerate(spans, start=1):
                chunks.append(f"{marker} (Part {part}/{len(spans)})\n\n{text[start:end]}")

        missing = declared_total - sum(1 for page in seen_pages if page <= declared_total)
        if missing > 0:
            LOGGER.warning(
                "%s of %s declared pages have no marker in the extracted text", missing, declared_total
            )
        return chunks

    @staticmethod
    def _pack(text: str, spans: Iterable[Span], target: int) -> List[Span]:
        """Greedily merge paragraph spans, flushing before the target would overflow."""

        packed: List[Span] = []
        buffer_start: int | None = None
        buffer_end = 0
        for start, end in spans:
            if end - start > target:
                if buffer_start is not None:
                    packed.append((buffer_start, buffer_end))
                    buffer_start = None
                packed.extend(_split_span(text, start, end, target))
                continue
            if buffer_start is not None and end - buffer_start > target:
                packed.append((buffer_start, buffer_end))
                buffer_start = None
            if buffer_start is None:
                buffer_start = start
            buffer_end = end
        if buffer_start is not None:
            packed.append((buffer_start, buffer_end))
        return packed


def _paragraph_spans(text: str, start: int = 0, end: int | None = None) -> List[Span]:
    """Return stripped spans of the non-blank paragraphs in ``text[start:end]``."""

    end = len(text) if end is None else end
    raw: List[Span] = []
    cursor = start
    for match in _PARAGRAPH_BREAK_RE.finditer(text, start, end):
        raw.append((cursor, match.start()))
        cursor = match.end()
    raw.append((cursor, end))

    spans: List[Span] = []
    for span_start, span_end in raw:
        while span_start < span_end and text[span_start].isspace():
            span_start += 1
        while span_end > span_start and text[span_end - 1].isspace():
            span_end -= 1
        if span_end > span_start:
            spans.append((span_start, span_end))
    return spans


def _part_body_chars(page_target: int, marker: str) -> int:
    """Body size for one part of a split page.

    Parts fit ``page_target`` including their header. When the header alone
    fills the target, bodies get the whole target and a part may exceed it by
    at most the header length.
    """

    room = page_target - len(marker) - _PART_SUFFIX_RESERVE - 2
    return room if room > 0 else page_target


def _split_span(text: str, start: int, end: int, target: int) -> List[Span]:
    """Split an oversized paragraph at word boundaries; over-long words are cut."""

    pieces: List[Span] = []
    piece_start: int | None = None
    piece_end = 0
    for word in _WORD_RE.finditer(text, start, end):
        word_start, word_end = word.span()
        if piece_start is not None and word_end - piece_start > target:
            pieces.append((piece_start, piece_end))
            piece_start = None
        while word_end - word_start > target:
            pieces.append((word_start, word_start + target))
            word_start += target
        if piece_start is None:
            piece_start = word_start
        piece_end = word_end
    if piece_start is not None:
        pieces.append((piece_start, piece_end))
    return pieces


def chunk_text(
    text: str | None,
    *,
    target_chars: int | None = None,
    config: Optional[ChunkingConfig] = None,
) -> List[str]:
    """Convenience wrapper around :class:`DocumentChunker`."""

    return DocumentChunker(config).chunk(text, target_chars=target_chars)
