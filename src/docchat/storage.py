"""Session-keyed persistence of processed documents."""
from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Protocol

from docchat.ingest.models import Document

LOGGER = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """Protocol describing the document persistence contract."""

    def put(self, key: str, document: Document) -> bool:
        """Store ``document`` under ``key``; return whether it was stored."""

    def get(self, key: str) -> Optional[Document]:
        """Return the document stored under ``key`` if any."""

    def clear(self, key: str) -> bool:
        """Remove the document stored under ``key``; return whether one existed."""


class InMemoryDocumentStore:
    """Thread-safe, process-local :class:`DocumentStore`."""

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._lock = threading.Lock()

    def put(self, key: str, document: Document) -> bool:
        if not key or not key.strip():
            LOGGER.warning("Refusing to store document %s without a session key", document.file_name)
            return False
        if not document.chunks:
            LOGGER.warning("Refusing to store document %s without chunks", document.file_name)
            return False
        with self._lock:
            self._documents[key] = document
        LOGGER.info("Stored document %s for session %s (%s chunks)", document.file_name, key, len(document.chunks))
        return True

    def get(self, key: str) -> Optional[Document]:
        with self._lock:
            return self._documents.get(key)

    def clear(self, key: str) -> bool:
        with self._lock:
            removed = self._documents.pop(key, None)
        if removed is not None:
            LOGGER.info("Cleared document %s for session %s", removed.file_name, key)
        return removed is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)


__all__ = ["DocumentStore", "InMemoryDocumentStore"]
