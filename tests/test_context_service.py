"""Tests for the orchestration service tying the pipeline stages together."""
from __future__ import annotations

import asyncio
import io

import pytest
from starlette.datastructures import UploadFile

from docchat.ingest.extractors import DocumentExtractionError
from docchat.prompt_builder import NO_CONTEXT_MESSAGE
from docchat.services.context import DocumentContextService, DocumentNotFoundError

LEASE_TEXT = "\n\n".join(
    f"[PAGE {page} OF 5]\nPage {page} covers rent for Acme Corp." for page in range(1, 6)
)


def test_ingest_and_build_context(service: DocumentContextService) -> None:
    result = service.ingest_text("s1", LEASE_TEXT, "lease.txt")

    assert result.stored
    assert len(result.document.chunks) == 5

    context = service.build_context("s1", "What is on page 3?")

    assert context.retrieval.mode == "page"
    assert context.query.requested_pages == (3,)
    assert context.context.chunk_indices[0] == 2
    assert "lease.txt" in context.system_prompt
    assert context.context.text in context.system_prompt
    assert context.warnings == ()


def test_missing_document_raises(service: DocumentContextService) -> None:
    with pytest.raises(DocumentNotFoundError):
        service.build_context("unknown", "hello")
    with pytest.raises(DocumentNotFoundError):
        service.get_document("unknown")


def test_clear_removes_the_document(service: DocumentContextService) -> None:
    service.ingest_text("s1", LEASE_TEXT, "lease.txt")

    assert service.clear("s1")
    assert not service.clear("s1")
    with pytest.raises(DocumentNotFoundError):
        service.get_document("s1")


def test_empty_text_is_not_stored(service: DocumentContextService) -> None:
    result = service.ingest_text("s1", "   ", "blank.txt")

    assert not result.stored
    assert result.document.chunks == ()


def test_retrieval_failure_degrades(service: DocumentContextService, monkeypatch: pytest.MonkeyPatch) -> None:
    service.ingest_text("s1", LEASE_TEXT, "lease.txt")

    def _boom(*_args, **_kwargs):
        raise RuntimeError("retriever exploded")

    monkeypatch.setattr(service.retriever, "retrieve", _boom)

    result = service.build_context("s1", "rent")

    assert result.retrieval.mode == "fallback"
    assert result.warnings == ("retrieval_failed",)
    assert result.context.chunk_indices


def test_assembly_failure_degrades(service: DocumentContextService, monkeypatch: pytest.MonkeyPatch) -> None:
    service.ingest_text("s1", LEASE_TEXT, "lease.txt")

    def _boom(*_args, **_kwargs):
        raise RuntimeError("assembler exploded")

    monkeypatch.setattr(service.assembler, "assemble", _boom)

    result = service.build_context("s1", "rent")

    assert result.context.text == ""
    assert result.warnings == ("context_assembly_failed",)
    assert NO_CONTEXT_MESSAGE in result.system_prompt


def test_configured_pages_and_entities_flow_through(settings_factory) -> None:
    service = DocumentContextService(
        settings=settings_factory(entities_of_interest=("Acme Corp",), pages_of_interest=(4,))
    )
    service.ingest_text("s1", LEASE_TEXT, "lease.txt")

    result = service.build_context("s1", "Anything noted near 4?")

    assert result.query.requested_pages == (4,)
    assert "IMPORTANT: Page 4 of this document" in result.system_prompt
    assert "IMPORTANT: This document contains information about Acme Corp." in result.system_prompt


def test_upload_is_extracted_and_ingested(service: DocumentContextService) -> None:
    upload = UploadFile(filename="notes.txt", file=io.BytesIO(LEASE_TEXT.encode("utf-8")))

    result = asyncio.run(service.ingest_upload("s2", upload))

    assert result.stored
    assert service.get_document("s2").file_name == "notes.txt"


def test_unsupported_upload_is_rejected(service: DocumentContextService) -> None:
    upload = UploadFile(filename="scan.pdf", file=io.BytesIO(b"%PDF-1.7"))

    with pytest.raises(DocumentExtractionError):
        asyncio.run(service.ingest_upload("s3", upload))
