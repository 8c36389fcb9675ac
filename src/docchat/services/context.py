from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional, Tuple

from fastapi import UploadFile

from docchat.config import Settings, get_settings
from docchat.context_builder import AssembledContext, CharRatioEstimator, ContextAssembler, TokenEstimator
from docchat.ingest.chunking import ChunkingConfig
from docchat.ingest.extractors import PlainTextExtractor, TextExtractor
from docchat.ingest.models import Document
from docchat.ingest.pipeline import IngestPipeline, IngestPipelineConfig
from docchat.logging_config import AUDIT_LOGGER_NAME
from docchat.prompt_builder import build_system_prompt
from docchat.query import QueryAnalyzer, SearchQuery
from docchat.retriever import RetrievalResult, Retriever
from docchat.storage import DocumentStore, InMemoryDocumentStore
from docchat.telemetry import emit_exception, emit_ingest_event, traced_duration

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


class DocumentNotFoundError(LookupError):
    """Raised when no document has been stored for a session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"No document uploaded for session {session_id}")
        self.session_id = session_id


@dataclass(slots=True)
class IngestResult:
    """Structured result returned from :meth:`DocumentContextService.ingest_text`."""

    session_id: str
    document: Document
    stored: bool
    duration_seconds: float


@dataclass(slots=True)
class ContextResult:
    """Structured result returned from :meth:`DocumentContextService.build_context`."""

    session_id: str
    query: SearchQuery
    retrieval: RetrievalResult
    context: AssembledContext
    system_prompt: str
    file_name: str
    warnings: Tuple[str, ...] = field(default_factory=tuple)


class DocumentContextService:
    """Explicit orchestration of ingestion, retrieval and context assembly.

    Every stage receives and returns immutable values; the only state held
    here is the document store keyed by session.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        pipeline: Optional[IngestPipeline] = None,
        extractor: Optional[TextExtractor] = None,
        estimator: Optional[TokenEstimator] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store: DocumentStore = store or InMemoryDocumentStore()
        self.pipeline = pipeline or IngestPipeline(
            IngestPipelineConfig(
                chunking=ChunkingConfig(
                    chunk_chars=self.settings.chunk_chars,
                    large_chunk_chars=self.settings.large_chunk_chars,
                    very_large_chunk_chars=self.settings.very_large_chunk_chars,
                    large_document_chars=self.settings.large_document_chars,
                    very_large_document_chars=self.settings.very_large_document_chars,
                ),
                entities_of_interest=self.settings.entities_of_interest,
            )
        )
        self.extractor: TextExtractor = extractor or PlainTextExtractor()
        self.analyzer = QueryAnalyzer(self.settings.pages_of_interest)
        self.retriever = Retriever()
        self.assembler = ContextAssembler(
            max_context_tokens=self.settings.max_context_tokens,
            estimator=estimator or CharRatioEstimator(self.settings.chars_per_token),
            pages_of_interest=self.settings.pages_of_interest,
        )

    def ingest_text(self, session_id: str, raw_text: str | None, file_name: str) -> IngestResult:
        started = time.perf_counter()
        emit_ingest_event(
            "ingest.file.start",
            file_name=file_name,
            session_id=session_id,
            total_length=len(raw_text or ""),
        )

        document = self.pipeline.ingest(raw_text, file_name)
        stored = self.store.put(session_id, document)
        duration = time.perf_counter() - started

        emit_ingest_event(
            "ingest.file.complete",
            file_name=file_name,
            session_id=session_id,
            total_length=document.total_length,
            duration_ms=duration * 1000.0,
            pages=len(document.pages),
            entities=len(document.entity_index),
            chunks=len(document.chunks),
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "session_id": session_id,
                "file_name": file_name,
                "chunk_count": len(document.chunks),
                "stored": stored,
            }
        )
        return IngestResult(session_id=session_id, document=document, stored=stored, duration_seconds=duration)

    async def ingest_upload(self, session_id: str, upload: UploadFile) -> IngestResult:
        """Extract text from an uploaded file and ingest it.

        Raises :class:`~docchat.ingest.extractors.DocumentExtractionError` when
        the upload cannot be read as text.
        """

        data = await upload.read()
        with traced_duration("ingest.extract", logger=LOGGER, session_id=session_id, file=upload.filename):
            extracted = self.extractor.extract(data, upload.filename or "")
        LOGGER.info(
            "Extracted %s characters from upload %s for session %s",
            len(extracted.text),
            extracted.file_name,
            session_id,
        )
        return self.ingest_text(session_id, extracted.text, extracted.file_name)

    def get_document(self, session_id: str) -> Document:
        document = self.store.get(session_id)
        if document is None:
            raise DocumentNotFoundError(session_id)
        return document

    def clear(self, session_id: str) -> bool:
        removed = self.store.clear(session_id)
        AUDIT_LOGGER.info({"event": "clear", "session_id": session_id, "removed": removed})
        return removed

    def build_context(self, session_id: str, message: str | None) -> ContextResult:
        """Analyse ``message`` and assemble the budgeted context for the session document.

        Retrieval and assembly failures are logged and degrade to an empty
        context so the chat turn can still proceed.
        """

        document = self.get_document(session_id)
        warnings: list[str] = []

        query = self.analyzer.analyze(message)
        try:
            retrieval = self.retriever.retrieve(document, query, session_id=session_id)
        except Exception as error:
            LOGGER.exception("Retrieval failed for session %s", session_id)
            emit_exception(
                module=f"{__name__}.retriever",
                error=error,
                session_id=session_id,
                file_name=document.file_name,
            )
            retrieval = RetrievalResult(mode="fallback")
            warnings.append("retrieval_failed")

        try:
            context = self.assembler.assemble(document, query, retrieval.chunks, session_id=session_id)
        except Exception as error:
            LOGGER.exception("Context assembly failed for session %s", session_id)
            emit_exception(
                module=f"{__name__}.assembler",
                error=error,
                session_id=session_id,
                file_name=document.file_name,
            )
            context = AssembledContext()
            warnings.append("context_assembly_failed")

        system_prompt = build_system_prompt(
            context.text,
            file_name=document.file_name,
            base_prompt=self.settings.system_prompt,
            entities_of_interest=self.settings.entities_of_interest,
            pages_of_interest=self.settings.pages_of_interest,
        )
        AUDIT_LOGGER.info(
            {
                "event": "context",
                "session_id": session_id,
                "file_name": document.file_name,
                "mode": retrieval.mode,
                "chunks": list(context.chunk_indices),
                "truncated": context.truncated,
            }
        )
        return ContextResult(
            session_id=session_id,
            query=query,
            retrieval=retrieval,
            context=context,
            system_prompt=system_prompt,
            file_name=document.file_name,
            warnings=tuple(warnings),
        )


@lru_cache
def get_context_service() -> DocumentContextService:
    return DocumentContextService()


__all__ = [
    "ContextResult",
    "DocumentContextService",
    "DocumentNotFoundError",
    "IngestResult",
    "get_context_service",
]
