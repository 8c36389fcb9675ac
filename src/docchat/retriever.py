"""Keyword and page-targeted retrieval over document chunks."""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, Set, Tuple

from docchat.ingest.models import Document
from docchat.query import SearchQuery
from docchat.telemetry import emit_retriever_event

LOGGER = logging.getLogger(__name__)

PAGE_WINDOW = 2
PAGE_WINDOW_LIMIT = 8
RESULT_FLOOR = 8
LARGE_RESULT_FLOOR = 12
LARGE_DOCUMENT_CHUNKS = 100
TAIL_SAMPLE_MIN_CHUNKS = 200
SAMPLE_SIZE = 3
ENTITY_WEIGHT = 4
PROXIMITY_WEIGHT = 2

_COMPANY_SUFFIX_PATTERN = r"[.,\s]+(?:inc|llc|co|ltd|corp)?"


@dataclass(frozen=True, slots=True)
class RankedChunk:
    index: int
    score: int


@dataclass(frozen=True, slots=True)
class RetrievalResult:
    """Chunks selected for a query and the mode that selected them.

    ``mode`` is one of ``page``, ``page_window``, ``keyword`` or ``fallback``.
    """

    mode: str
    chunks: Tuple[RankedChunk, ...] = ()

    @property
    def indices(self) -> Tuple[int, ...]:
        return tuple(chunk.index for chunk in self.chunks)


def is_entity_like(keyword: str) -> bool:
    return " " in keyword or (len(keyword) >= 3 and keyword[0].isupper())


@dataclass(frozen=True, slots=True)
class _Keyword:
    needle: str
    entity_like: bool
    variants: Tuple[re.Pattern[str], ...]


def _prepare(keywords: Sequence[str]) -> List[_Keyword]:
    prepared: List[_Keyword] = []
    for keyword in keywords:
        keyword = keyword.strip()
        if not keyword:
            continue
        needle = keyword.lower()
        variants: Tuple[re.Pattern[str], ...] = ()
        if is_entity_like(keyword):
            spaced = "[-_ ]*".join(re.escape(part) for part in needle.split())
            variants = (
                re.compile(spaced),
                re.compile(re.escape(needle) + _COMPANY_SUFFIX_PATTERN),
            )
        prepared.append(_Keyword(needle, is_entity_like(keyword), variants))
    return prepared


def _score(lowered: str, keywords: Sequence[_Keyword]) -> int:
    score = 0
    present = 0
    for keyword in keywords:
        matches = lowered.count(keyword.needle)
        if keyword.entity_like:
            if any(pattern.search(lowered) for pattern in keyword.variants):
                matches += 1
            score += matches * ENTITY_WEIGHT
        else:
            score += matches
        if matches > 0:
            present += 1
    if len(keywords) >= 2 and present >= 2:
        score += PROXIMITY_WEIGHT * present
    return score


def score_chunk(chunk: str, keywords: Sequence[str]) -> int:
    """Weighted keyword score of a single chunk.

    Plain matches count once; entity-like keywords count four times and earn a
    bonus when a punctuation or suffix tolerant variant matches. Chunks where
    two or more keywords co-occur receive a proximity bonus.
    """

    return _score(chunk.lower(), _prepare(keywords))


def score_chunks(chunks: Sequence[str], keywords: Sequence[str]) -> List[int]:
    prepared = _prepare(keywords)
    return [_score(chunk.lower(), prepared) for chunk in chunks]


def result_floor(chunk_count: int) -> int:
    return LARGE_RESULT_FLOOR if chunk_count > LARGE_DOCUMENT_CHUNKS else RESULT_FLOOR


def fallback_indices(chunk_count: int) -> List[int]:
    """Spread a small sample over the document: head, middle and, for long documents, tail."""

    if chunk_count <= 0:
        return []
    candidates = list(range(min(SAMPLE_SIZE, chunk_count)))
    middle = chunk_count // 2
    candidates.extend(range(max(middle - 1, 0), min(middle - 1 + SAMPLE_SIZE, chunk_count)))
    if chunk_count > TAIL_SAMPLE_MIN_CHUNKS:
        candidates.extend(range(chunk_count - SAMPLE_SIZE, chunk_count))
    return list(dict.fromkeys(candidates))


class Retriever:
    """Rank document chunks for a :class:`SearchQuery`."""

    def retrieve(
        self,
        document: Document,
        query: SearchQuery,
        *,
        session_id: Optional[str] = None,
    ) -> RetrievalResult:
        started = time.perf_counter()
        result = self._retrieve(document, query)
        duration_ms = (time.perf_counter() - started) * 1000.0
        LOGGER.info(
            "Retrieved %s of %s chunks for %s using %s mode",
            len(result.chunks),
            len(document.chunks),
            document.file_name,
            result.mode,
        )
        emit_retriever_event(
            query=query.raw_text,
            mode=result.mode,
            results=[{"index": chunk.index, "score": chunk.score} for chunk in result.chunks],
            duration_ms=duration_ms,
            session_id=session_id,
        )
        return result

    def _retrieve(self, document: Document, query: SearchQuery) -> RetrievalResult:
        if not document.chunks:
            return RetrievalResult(mode="fallback")

        scores = score_chunks(document.chunks, query.keywords)
        ranked = self._rank(scores)

        if query.requested_pages:
            result = self._by_pages(document, query, scores, ranked)
            if result is not None:
                return result
            LOGGER.info("No chunks near requested pages %s; using keyword search", list(query.requested_pages))

        positive = [chunk for chunk in ranked if chunk.score > 0]
        if not positive:
            LOGGER.info("No keyword matches in %s; sampling across the document", document.file_name)
            return RetrievalResult(
                mode="fallback",
                chunks=tuple(RankedChunk(index, scores[index]) for index in fallback_indices(len(scores))),
            )

        limit = max(result_floor(len(scores)), len(positive))
        return RetrievalResult(mode="keyword", chunks=tuple(ranked[:limit]))

    @staticmethod
    def _rank(scores: Sequence[int]) -> List[RankedChunk]:
        ranked = [RankedChunk(index, score) for index, score in enumerate(scores)]
        ranked.sort(key=lambda chunk: chunk.score, reverse=True)
        return ranked

    @staticmethod
    def _by_pages(
        document: Document,
        query: SearchQuery,
        scores: Sequence[int],
        ranked: Sequence[RankedChunk],
    ) -> Optional[RetrievalResult]:
        requested: Set[int] = set(query.requested_pages)
        exact = [index for index, meta in enumerate(document.chunk_metadata) if meta.pages & requested]
        if exact:
            LOGGER.info("Found %s chunks on requested pages %s", len(exact), sorted(requested))
            included = set(exact)
            chunks = [RankedChunk(index, scores[index]) for index in exact]
            chunks.extend(chunk for chunk in ranked if chunk.score > 0 and chunk.index not in included)
            return RetrievalResult(mode="page", chunks=tuple(chunks))

        window = {
            page + offset
            for page in requested
            for offset in range(-PAGE_WINDOW, PAGE_WINDOW + 1)
            if page + offset > 0
        }
        nearby = [index for index, meta in enumerate(document.chunk_metadata) if meta.pages & window]
        if nearby:
            LOGGER.info("Using %s chunks from pages near %s", min(len(nearby), PAGE_WINDOW_LIMIT), sorted(requested))
            return RetrievalResult(
                mode="page_window",
                chunks=tuple(RankedChunk(index, scores[index]) for index in nearby[:PAGE_WINDOW_LIMIT]),
            )
        return None


__all__ = [
    "RankedChunk",
    "RetrievalResult",
    "Retriever",
    "fallback_indices",
    "is_entity_like",
    "result_floor",
    "score_chunk",
    "score_chunks",
]
