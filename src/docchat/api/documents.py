"""API router exposing document upload and context endpoints."""
from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from docchat.ingest.extractors import DocumentExtractionError
from docchat.ingest.models import Document
from docchat.services.context import (
    ContextResult,
    DocumentContextService,
    DocumentNotFoundError,
    IngestResult,
    get_context_service,
)

router = APIRouter(prefix="/sessions", tags=["documents"])


class DocumentTextRequest(BaseModel):
    """Request body carrying already extracted document text."""

    file_name: str = Field(..., min_length=1, description="Original name of the uploaded file.")
    text: str = Field(..., description="Raw text extracted from the document.")


class DocumentResponse(BaseModel):
    """Summary of the document stored for a session."""

    session_id: str
    file_name: str
    total_length: int
    chunk_count: int
    pages: list[int]
    entities: dict[str, int]
    summary: str
    upload_time: datetime


class IngestResponse(DocumentResponse):
    duration_seconds: float


class ContextRequest(BaseModel):
    message: str = Field(..., min_length=1, description="User message the context is assembled for.")


class ContextResponse(BaseModel):
    """Assembled context and the system prompt embedding it."""

    session_id: str
    file_name: str
    mode: str
    requested_pages: list[int]
    chunk_indices: list[int]
    pages: list[int]
    estimated_tokens: int
    truncated: bool
    context: str
    system_prompt: str
    warnings: list[str]


def _describe(session_id: str, document: Document) -> dict:
    return {
        "session_id": session_id,
        "file_name": document.file_name,
        "total_length": document.total_length,
        "chunk_count": len(document.chunks),
        "pages": document.pages,
        "entities": {entity: len(indices) for entity, indices in document.entity_index.items()},
        "summary": document.summary,
        "upload_time": document.upload_time,
    }


def _ingest_response(result: IngestResult) -> IngestResponse:
    if not result.stored:
        raise HTTPException(status_code=400, detail="Document contains no text that could be processed")
    return IngestResponse(
        **_describe(result.session_id, result.document),
        duration_seconds=result.duration_seconds,
    )


@router.post("/{session_id}/documents", response_model=IngestResponse)
def ingest_document_text(
    session_id: str,
    request: DocumentTextRequest,
    service: DocumentContextService = Depends(get_context_service),
) -> IngestResponse:
    """Process already extracted document text for the session."""

    return _ingest_response(service.ingest_text(session_id, request.text, request.file_name))


@router.post("/{session_id}/documents/upload", response_model=IngestResponse)
async def upload_document(
    session_id: str,
    file: UploadFile = File(...),
    service: DocumentContextService = Depends(get_context_service),
) -> IngestResponse:
    """Upload a plain-text document for the session."""

    try:
        result = await service.ingest_upload(session_id, file)
    except DocumentExtractionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _ingest_response(result)


@router.get("/{session_id}/document", response_model=DocumentResponse)
def get_document(
    session_id: str,
    service: DocumentContextService = Depends(get_context_service),
) -> DocumentResponse:
    try:
        document = service.get_document(session_id)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DocumentResponse(**_describe(session_id, document))


@router.delete("/{session_id}/document")
def clear_document(
    session_id: str,
    service: DocumentContextService = Depends(get_context_service),
) -> dict[str, object]:
    return {"session_id": session_id, "removed": service.clear(session_id)}


@router.post("/{session_id}/context", response_model=ContextResponse)
def build_context(
    session_id: str,
    request: ContextRequest,
    service: DocumentContextService = Depends(get_context_service),
) -> ContextResponse:
    """Assemble the document context for a user message."""

    if not request.message.strip():
        raise HTTPException(status_code=422, detail="Message must not be empty")

    try:
        result: ContextResult = service.build_context(session_id, request.message)
    except DocumentNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ContextResponse(
        session_id=result.session_id,
        file_name=result.file_name,
        mode=result.retrieval.mode,
        requested_pages=list(result.query.requested_pages),
        chunk_indices=list(result.context.chunk_indices),
        pages=list(result.context.pages),
        estimated_tokens=result.context.estimated_tokens,
        truncated=result.context.truncated,
        context=result.context.text,
        system_prompt=result.system_prompt,
        warnings=list(result.warnings),
    )
