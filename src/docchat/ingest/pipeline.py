"""High level ingestion pipeline entry point."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence, Tuple

from docchat.telemetry import emit_exception

from .chunking import ChunkingConfig, DocumentChunker
from .enrichment import DEFAULT_MAX_ENTITIES, MetadataEnricher
from .models import ChunkMetadata, Document
from .normalization import normalize_text

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestPipelineConfig:
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    entities_of_interest: Tuple[str, ...] = ()
    max_entities: int = DEFAULT_MAX_ENTITIES


@dataclass(slots=True)
class IngestStatistics:
    """Figures describing the most recent ingestion run."""

    file_name: str
    total_length: int
    chunk_count: int
    page_count: int
    entity_count: int
    duration_seconds: float


def build_summary(
    file_name: str,
    total_length: int,
    metadata: Sequence[ChunkMetadata],
    entity_index: Mapping[str, Sequence[int]],
) -> str:
    """Describe the document's structure: size, page coverage and entities."""

    pages = sorted({page for item in metadata for page in item.pages})
    lines = [
        f"Document: {file_name}",
        f"Total Length: {total_length} characters",
        f"Chunks: {len(metadata)}",
        f"Page Coverage: {len(pages)} pages",
        f"Pages: {', '.join(str(page) for page in pages)}",
        f"Key Entities: {len(entity_index)}",
    ]
    lines.extend(f"  - {entity}: {len(indices)} mentions" for entity, indices in entity_index.items())
    return "\n".join(lines)


class IngestPipeline:
    """Pipeline orchestrating normalisation, chunking and enrichment."""

    def __init__(self, config: Optional[IngestPipelineConfig] = None) -> None:
        self.config = config or IngestPipelineConfig()
        self.chunker = DocumentChunker(self.config.chunking)
        self.enricher = MetadataEnricher(
            self.config.entities_of_interest,
            max_entities=self.config.max_entities,
        )
        self.last_statistics: IngestStatistics | None = None

    def ingest(self, raw_text: str | None, file_name: str) -> Document:
        """Turn extracted text into an immutable :class:`Document`.

        Never raises: an unexpected failure yields a document without chunks.
        """

        started = time.perf_counter()
        try:
            document = self._build(raw_text, file_name)
        except Exception as error:
            LOGGER.exception("Failed to process document %s", file_name)
            emit_exception(module=__name__, error=error, file_name=file_name)
            document = Document(file_name=file_name, total_length=len(raw_text or ""))

        self.last_statistics = IngestStatistics(
            file_name=file_name,
            total_length=document.total_length,
            chunk_count=len(document.chunks),
            page_count=len(document.pages),
            entity_count=len(document.entity_index),
            duration_seconds=time.perf_counter() - started,
        )
        LOGGER.info(
            "Processed %s into %s chunks (%s pages, %s entities)",
            file_name,
            len(document.chunks),
            self.last_statistics.page_count,
            self.last_statistics.entity_count,
        )
        return document

    def _build(self, raw_text: str | None, file_name: str) -> Document:
        text = normalize_text(raw_text)
        chunks = self.chunker.chunk(text)
        if not chunks:
            return Document(
                file_name=file_name,
                total_length=len(text),
                summary=build_summary(file_name, len(text), (), {}),
            )

        result = self.enricher.enrich(text, chunks)
        return Document(
            file_name=file_name,
            chunks=tuple(chunks),
            chunk_metadata=result.metadata,
            entity_index=result.entity_index,
            total_length=len(text),
            summary=build_summary(file_name, len(text), result.metadata, result.entity_index),
        )
