"""Document ingestion: normalisation, chunking and metadata enrichment."""

from .chunking import ChunkingConfig, DocumentChunker, chunk_text
from .enrichment import EnrichmentResult, MetadataEnricher, discover_entities, enrich_chunks
from .extractors import DocumentExtractionError, ExtractedText, PlainTextExtractor, TextExtractor
from .models import ChunkMetadata, Document
from .pipeline import IngestPipeline, IngestPipelineConfig, IngestStatistics

__all__ = [
    "ChunkMetadata",
    "ChunkingConfig",
    "Document",
    "DocumentChunker",
    "DocumentExtractionError",
    "EnrichmentResult",
    "ExtractedText",
    "IngestPipeline",
    "IngestPipelineConfig",
    "IngestStatistics",
    "MetadataEnricher",
    "PlainTextExtractor",
    "TextExtractor",
    "chunk_text",
    "discover_entities",
    "enrich_chunks",
]
