"""Budgeted assembly of document chunks into a single context string."""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from docchat.ingest.models import ChunkMetadata, Document
from docchat.query import SearchQuery, tokenize
from docchat.retriever import RankedChunk
from docchat.telemetry import emit_context_event

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CONTEXT_TOKENS = 12_000
DEFAULT_CHARS_PER_TOKEN = 4.0
MAX_ATTENTION_ENTITIES = 5
MIN_STRIDE_SAMPLE = 5

CHUNK_DELIMITER = "\n\n---\n\n"
PAGE_ATTENTION_LINES = (
    "IMPORTANT INSTRUCTION: Pay very close attention to all PAGE NUMBERS in this document. "
    "Look specifically for page markers like [PAGE n OF total].",
    "When the user asks about specific pages, find and report the information from those pages.",
)
_HEADER_LINE_LIMIT = 200
_HEADER_RULE = "---"
# Upper bound of everything the assembler adds outside the per-chunk blocks.
MAX_HEADER_OVERHEAD = (
    4 * (_HEADER_LINE_LIMIT + 1)
    + sum(len(line) + 1 for line in PAGE_ATTENTION_LINES)
    + len(_HEADER_RULE)
    + 2
)

_MARKER_RE = re.compile(r"\[(?:DOCUMENT\s+)?PAGE\s+(\d+)\s+OF\s+(\d+)\]", re.IGNORECASE)


class TokenEstimator(Protocol):
    """Converts between text length and an estimated model token count."""

    def estimate_tokens(self, text: str) -> int:
        ...

    def chars_for_tokens(self, tokens: int) -> int:
        ...


class CharRatioEstimator:
    """Estimate tokens with a fixed characters-per-token ratio."""

    def __init__(self, chars_per_token: float = DEFAULT_CHARS_PER_TOKEN) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive")
        self.chars_per_token = chars_per_token

    def estimate_tokens(self, text: str) -> int:
        return math.ceil(len(text or "") / self.chars_per_token)

    def chars_for_tokens(self, tokens: int) -> int:
        return max(int(tokens * self.chars_per_token), 0)


@dataclass(frozen=True, slots=True)
class AssembledContext:
    text: str = ""
    chunk_indices: Tuple[int, ...] = ()
    pages: Tuple[int, ...] = ()
    estimated_tokens: int = 0
    truncated: bool = False


def format_page_ranges(pages: Iterable[int]) -> str:
    """Render ``[1, 2, 3, 7]`` as ``1-3, 7``."""

    ordered = sorted(set(pages))
    ranges: List[str] = []
    start = previous = None
    for page in ordered:
        if previous is not None and page == previous + 1:
            previous = page
            continue
        if start is not None:
            ranges.append(f"{start}-{previous}" if previous != start else str(start))
        start = previous = page
    if start is not None:
        ranges.append(f"{start}-{previous}" if previous != start else str(start))
    return ", ".join(ranges)


def _clip(line: str, limit: int = _HEADER_LINE_LIMIT) -> str:
    if len(line) <= limit:
        return line
    return line[: limit - 1] + "…"


def _position_label(index: int, total: int) -> str:
    if index * 3 < total:
        return "BEGINNING"
    if index * 3 < total * 2:
        return "MIDDLE"
    return "END"


def highlight(text: str, entities: Sequence[str]) -> str:
    """Emphasise page markers and entity mentions inside a chunk body."""

    text = _MARKER_RE.sub(lambda match: f"### [DOCUMENT PAGE {match.group(1)} of {match.group(2)}] ###", text)
    names = sorted({entity for entity in entities if len(entity) >= 3}, key=len, reverse=True)
    if not names:
        return text
    pattern = re.compile(
        r"(?<!\w)(?:" + "|".join(re.escape(name) for name in names) + r")(?!\w)",
        re.IGNORECASE,
    )
    return pattern.sub(lambda match: f"**{match.group(0)}**", text)


def render_chunk(document: Document, index: int) -> str:
    """Render one chunk as a labelled block followed by the chunk delimiter."""

    meta: ChunkMetadata = document.chunk_metadata[index]
    if meta.pages:
        label = f"--- DOCUMENT CONTENT FROM PAGE(S) {', '.join(str(page) for page in sorted(meta.pages))} ---"
    else:
        total = len(document.chunks)
        label = f"--- DOCUMENT CHUNK {index + 1} OF {total} ({_position_label(index, total)}) ---"
    if meta.key_entities:
        label += f" [ENTITIES: {', '.join(meta.key_entities)}]"
    return f"{label}\n{highlight(document.chunks[index], meta.key_entities)}{CHUNK_DELIMITER}"


class ContextAssembler:
    """Select chunks under a token budget and format them for a prompt.

    High-priority chunks (requested pages, entities named in the query, pages
    of interest) are taken first. The remaining chunks are included in full
    when they fit; otherwise retrieved chunks are preferred and the rest of the
    budget is spread over the document by stride sampling.
    """

    def __init__(
        self,
        max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
        estimator: Optional[TokenEstimator] = None,
        pages_of_interest: Iterable[int] = (),
    ) -> None:
        self.max_context_tokens = max_context_tokens
        self.estimator: TokenEstimator = estimator or CharRatioEstimator()
        self.pages_of_interest = frozenset(pages_of_interest)

    @property
    def budget_chars(self) -> int:
        return self.estimator.chars_for_tokens(self.max_context_tokens)

    def is_high_priority(self, meta: ChunkMetadata, query: SearchQuery, query_words: Set[str]) -> bool:
        if meta.pages & set(query.requested_pages):
            return True
        for entity in meta.key_entities:
            if any(len(word) > 2 and word.casefold() in query_words for word in entity.split()):
                return True
        return bool(meta.pages & self.pages_of_interest)

    def assemble(
        self,
        document: Document,
        query: SearchQuery,
        ranked: Optional[Sequence[RankedChunk]] = None,
        *,
        session_id: Optional[str] = None,
    ) -> AssembledContext:
        if not document.chunks:
            LOGGER.info("Document %s has no chunks; returning empty context", document.file_name)
            return AssembledContext()

        query_words = {word.casefold() for word in tokenize(query.raw_text)}
        blocks: Dict[int, str] = {}

        def block(index: int) -> str:
            if index not in blocks:
                blocks[index] = render_chunk(document, index)
            return blocks[index]

        remaining = self.budget_chars
        truncated = False

        high: List[int] = []
        regular: List[int] = []
        for index, meta in enumerate(document.chunk_metadata):
            (high if self.is_high_priority(meta, query, query_words) else regular).append(index)

        selected_high: List[int] = []
        for index in high:
            if len(block(index)) <= remaining:
                selected_high.append(index)
                remaining -= len(block(index))
            else:
                truncated = True

        regular_lengths = {index: len(block(index)) for index in regular}
        if sum(regular_lengths.values()) <= remaining:
            selected_regular = list(regular)
        else:
            truncated = True
            selected_regular, remaining = self._sample_regular(regular, regular_lengths, ranked or (), remaining)

        selected = selected_high + sorted(selected_regular)
        pages = sorted({page for index in selected for page in document.chunk_metadata[index].pages})
        text = (self._header(document, query, pages) + "".join(block(index) for index in selected)).rstrip()
        context = AssembledContext(
            text=text,
            chunk_indices=tuple(selected),
            pages=tuple(pages),
            estimated_tokens=self.estimator.estimate_tokens(text),
            truncated=truncated,
        )
        LOGGER.info(
            "Assembled context for %s: %s/%s chunks (%s high priority), %s chars",
            document.file_name,
            len(selected),
            len(document.chunks),
            len(selected_high),
            len(context.text),
        )
        emit_context_event(
            file_name=document.file_name,
            chunk_indices=context.chunk_indices,
            estimated_tokens=context.estimated_tokens,
            truncated=truncated,
            session_id=session_id,
        )
        return context

    @staticmethod
    def _sample_regular(
        regular: Sequence[int],
        lengths: Dict[int, int],
        ranked: Sequence[RankedChunk],
        remaining: int,
    ) -> Tuple[List[int], int]:
        chosen: Set[int] = set()
        candidates = set(regular)
        for item in ranked:
            if item.score > 0 and item.index in candidates and item.index not in chosen:
                if lengths[item.index] <= remaining:
                    chosen.add(item.index)
                    remaining -= lengths[item.index]

        pool = [index for index in regular if index not in chosen]
        if pool and remaining > 0:
            average = sum(lengths[index] for index in pool) / len(pool)
            target = min(len(pool), int(remaining // (average + 1)))
            target = max(target, min(MIN_STRIDE_SAMPLE, len(pool)))
            stride = len(pool) / target
            LOGGER.debug("Stride sampling %s of %s regular chunks (stride %.2f)", target, len(pool), stride)
            for step in range(target):
                index = pool[min(int(step * stride), len(pool) - 1)]
                if index not in chosen and lengths[index] <= remaining:
                    chosen.add(index)
                    remaining -= lengths[index]
        return sorted(chosen), remaining

    @staticmethod
    def _header(document: Document, query: SearchQuery, pages: Sequence[int]) -> str:
        lines = [_clip(f"Document: {document.file_name}")]
        if pages:
            lines.append(_clip(f"The included content covers pages: {format_page_ranges(pages)}"))
        if query.requested_pages:
            lines.append(
                _clip(f"You specifically requested information from page(s): {format_page_ranges(query.requested_pages)}")
            )
        lines.extend(PAGE_ATTENTION_LINES)
        entities = [entity for entity in document.entity_index if len(entity) > 3][:MAX_ATTENTION_ENTITIES]
        if entities:
            lines.append(_clip(f"Pay attention to these important entities in the document: {', '.join(entities)}."))
        lines.append(_HEADER_RULE)
        return "\n".join(lines) + "\n\n"


__all__ = [
    "AssembledContext",
    "CHUNK_DELIMITER",
    "CharRatioEstimator",
    "ContextAssembler",
    "MAX_HEADER_OVERHEAD",
    "TokenEstimator",
    "format_page_ranges",
    "highlight",
    "render_chunk",
]
