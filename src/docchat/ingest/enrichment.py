"""Chunk metadata enrichment: offsets, page numbers and entities of interest."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from .models import ChunkMetadata

LOGGER = logging.getLogger(__name__)

PAGE_REFERENCE_RE = re.compile(r"\[(?:DOCUMENT\s+)?PAGE\s+(\d+)\s+OF\s+\d+\]", re.IGNORECASE)
_PAGE_HEADER_RE = re.compile(r"^\[PAGE \d+ OF \d+\](?: \(Part \d+/\d+\))?\n\n")
_COMPANY_RE = re.compile(
    r"\b[A-Z][A-Za-z&]+(?:[ \t]+[A-Z][A-Za-z&]+)*[ \t]+"
    r"(?:Group|Inc\.?|LLC|Corporation|Corp\.?|Company|Co\.?|Ltd\.?)(?![A-Za-z])"
)
_CAPITALIZED_PHRASE_RE = re.compile(r"\b[A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+){1,3}\b")
_AREA_QUANTITY_RE = re.compile(
    r"(?<![\w.,])(?:\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)[ \t]*"
    r"(?:sq\.?[ \t]*(?:ft|feet|foot)\.?|square[ \t]+(?:feet|foot)|SF)(?!\w)",
    re.IGNORECASE,
)
_LEADING_ARTICLE_RE = re.compile(r"^(?:The|This|That|These|Those|An|A)\s+")

DEFAULT_MAX_ENTITIES = 1000


@dataclass(frozen=True, slots=True)
class EnrichmentResult:
    metadata: Tuple[ChunkMetadata, ...]
    entity_index: Dict[str, Tuple[int, ...]]


def _clean_entity(value: str) -> str:
    cleaned = " ".join(value.split()).rstrip(".,")
    return _LEADING_ARTICLE_RE.sub("", cleaned)


def extract_named_entities(text: str | None) -> List[str]:
    """Return company names and capitalised multi-word phrases in match order."""

    if not text:
        return []
    found: List[str] = []
    for pattern in (_COMPANY_RE, _CAPITALIZED_PHRASE_RE):
        for match in pattern.finditer(text):
            entity = _clean_entity(match.group(0))
            if " " in entity:
                found.append(entity)
    return found


def discover_entities(
    text: str | None,
    entities_of_interest: Iterable[str] = (),
    *,
    max_entities: int = DEFAULT_MAX_ENTITIES,
) -> Tuple[str, ...]:
    """Return the document-wide entity set in first-discovered order.

    Configured entities of interest come first (when the text mentions them),
    followed by company names, capitalised multi-word phrases and area
    quantities. Duplicates are removed case-insensitively.
    """

    if not text:
        return ()

    lowered = text.casefold()
    found: Dict[str, str] = {}

    def _add(entity: str) -> None:
        key = entity.casefold()
        if key and key not in found and len(found) < max_entities:
            found[key] = entity

    for entity in entities_of_interest:
        entity = entity.strip()
        if entity and entity.casefold() in lowered:
            LOGGER.info("Found entity of interest: %s", entity)
            _add(entity)

    for entity in extract_named_entities(text):
        _add(entity)

    for match in _AREA_QUANTITY_RE.finditer(text):
        _add(_clean_entity(match.group(0)))

    if len(found) >= max_entities:
        LOGGER.warning("Entity discovery stopped at the limit of %s entities", max_entities)
    return tuple(found.values())


def _locate(source: str, chunk: str, position: int) -> Tuple[int, int]:
    """Find ``chunk`` in ``source`` at or after ``position``; never moves backwards."""

    found = source.find(chunk, position)
    if found != -1:
        return found, found + len(chunk)

    body = _PAGE_HEADER_RE.sub("", chunk, count=1)
    if body and body != chunk:
        found = source.find(body, position)
        if found != -1:
            return found, found + len(body)

    LOGGER.debug("Chunk text not found in source after offset %s; keeping last offset", position)
    return position, position


def enrich_chunks(
    source: str,
    chunks: Sequence[str],
    entities: Sequence[str],
) -> EnrichmentResult:
    """Tag every chunk against a frozen entity set.

    The result depends only on the arguments, so re-running it on the same
    chunks and entity set yields identical metadata.
    """

    source = source or ""
    folded_entities = [(entity, entity.casefold()) for entity in entities]
    metadata: List[ChunkMetadata] = []
    index: Dict[str, List[int]] = {}
    position = 0

    for chunk_index, chunk in enumerate(chunks):
        start, end = _locate(source, chunk, position)
        position = end

        pages = frozenset(int(match.group(1)) for match in PAGE_REFERENCE_RE.finditer(chunk))
        lowered = chunk.casefold()
        matched = tuple(entity for entity, folded in folded_entities if folded in lowered)
        for entity in matched:
            index.setdefault(entity, []).append(chunk_index)

        metadata.append(
            ChunkMetadata(
                index=chunk_index,
                start_offset=start,
                end_offset=end,
                pages=pages,
                key_entities=matched,
            )
        )

    return EnrichmentResult(
        metadata=tuple(metadata),
        entity_index={entity: tuple(indices) for entity, indices in index.items()},
    )


class MetadataEnricher:
    """Two-phase enricher: discover and freeze entities, then tag chunks."""

    def __init__(
        self,
        entities_of_interest: Iterable[str] = (),
        *,
        max_entities: int = DEFAULT_MAX_ENTITIES,
    ) -> None:
        self.entities_of_interest = tuple(entities_of_interest)
        self.max_entities = max_entities

    def discover(self, text: str | None) -> Tuple[str, ...]:
        return discover_entities(text, self.entities_of_interest, max_entities=self.max_entities)

    def enrich(self, source: str, chunks: Sequence[str]) -> EnrichmentResult:
        entities = self.discover(source)
        LOGGER.info("Discovered %s entities before tagging %s chunks", len(entities), len(chunks))
        result = enrich_chunks(source, chunks, entities)
        LOGGER.info("Indexed %s entities across %s chunks", len(result.entity_index), len(chunks))
        return result
