"""Shared fixtures for the docchat test-suite."""
from __future__ import annotations

import os
import tempfile
from typing import Callable, Dict, Iterable, Optional, Sequence

import pytest

os.environ.setdefault("DOCCHAT_LOG_DIR", tempfile.mkdtemp(prefix="docchat-logs-"))

from docchat.config import Settings  # noqa: E402
from docchat.ingest.models import ChunkMetadata, Document  # noqa: E402
from docchat.services.context import DocumentContextService  # noqa: E402
from docchat.storage import InMemoryDocumentStore  # noqa: E402

DocumentFactory = Callable[..., Document]


def _settings(**overrides) -> Settings:
    values = dict(
        max_context_tokens=12_000,
        chars_per_token=4.0,
        chunk_chars=500,
        large_chunk_chars=200,
        very_large_chunk_chars=150,
        large_document_chars=100_000,
        very_large_document_chars=300_000,
        entities_of_interest=(),
        pages_of_interest=(),
        system_prompt="You are a helpful assistant.",
        log_dir=os.environ["DOCCHAT_LOG_DIR"],
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture()
def settings_factory() -> Callable[..., Settings]:
    return _settings


@pytest.fixture()
def service() -> DocumentContextService:
    return DocumentContextService(settings=_settings(), store=InMemoryDocumentStore())


@pytest.fixture()
def make_document() -> DocumentFactory:
    """Build a document directly from chunk texts and per-chunk metadata."""

    def _make(
        chunks: Sequence[str],
        *,
        pages: Optional[Dict[int, Iterable[int]]] = None,
        entities: Optional[Dict[int, Sequence[str]]] = None,
        file_name: str = "document.txt",
    ) -> Document:
        pages = pages or {}
        entities = entities or {}
        metadata = []
        index: Dict[str, list] = {}
        offset = 0
        for position, chunk in enumerate(chunks):
            chunk_entities = tuple(entities.get(position, ()))
            for entity in chunk_entities:
                index.setdefault(entity, []).append(position)
            metadata.append(
                ChunkMetadata(
                    index=position,
                    start_offset=offset,
                    end_offset=offset + len(chunk),
                    pages=frozenset(pages.get(position, ())),
                    key_entities=chunk_entities,
                )
            )
            offset += len(chunk) + 2
        return Document(
            file_name=file_name,
            chunks=tuple(chunks),
            chunk_metadata=tuple(metadata),
            entity_index=index,
            total_length=offset,
        )

    return _make
