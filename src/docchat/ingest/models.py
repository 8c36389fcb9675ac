"""Data models produced by the ingestion pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Mapping, Tuple


@dataclass(frozen=True, slots=True)
class ChunkMetadata:
    """Location and entity metadata attached to an individual chunk."""

    index: int
    start_offset: int
    end_offset: int
    pages: frozenset[int] = frozenset()
    key_entities: Tuple[str, ...] = ()


def _empty_index() -> Mapping[str, Tuple[int, ...]]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class Document:
    """An uploaded document split into chunks, built once and never mutated."""

    file_name: str
    chunks: Tuple[str, ...] = ()
    chunk_metadata: Tuple[ChunkMetadata, ...] = ()
    entity_index: Mapping[str, Tuple[int, ...]] = field(default_factory=_empty_index)
    total_length: int = 0
    summary: str = ""
    upload_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if len(self.chunks) != len(self.chunk_metadata):
            raise ValueError("chunks and chunk_metadata must be index-aligned")
        if not isinstance(self.entity_index, MappingProxyType):
            frozen = {name: tuple(indices) for name, indices in self.entity_index.items()}
            object.__setattr__(self, "entity_index", MappingProxyType(frozen))

    @property
    def pages(self) -> list[int]:
        """Sorted distinct page numbers seen across all chunks."""
        return sorted({page for metadata in self.chunk_metadata for page in metadata.pages})

    def full_content(self) -> str:
        return "\n\n".join(self.chunks)
