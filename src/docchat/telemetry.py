"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import os
import platform
import sys
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional


LOGGER = logging.getLogger("docchat.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "DOCCHAT_MAX_CONTEXT_TOKENS",
    "DOCCHAT_CHARS_PER_TOKEN",
    "DOCCHAT_CHUNK_CHARS",
    "DOCCHAT_LARGE_CHUNK_CHARS",
    "DOCCHAT_VERY_LARGE_CHUNK_CHARS",
    "DOCCHAT_ENTITIES_OF_INTEREST",
    "DOCCHAT_PAGES_OF_INTEREST",
    "DOCCHAT_LOG_DIR",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    session_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if session_id:
        event["session_id"] = session_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    if extra:
        event.update(extra)
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    log_event(LOGGER, "app.startup", details=details, extra={"pid": os.getpid()})


def emit_ingest_event(
    step: str,
    *,
    file_name: str,
    session_id: str,
    total_length: int | None = None,
    duration_ms: float | None = None,
    pages: int | None = None,
    entities: int | None = None,
    chunks: int | None = None,
) -> None:
    details = {
        "file": file_name,
        "total_length": total_length,
        "pages": pages,
        "entities": entities,
        "chunks": chunks,
    }
    log_event(LOGGER, step, session_id=session_id, duration_ms=duration_ms, details=details)


def emit_retriever_event(
    *,
    query: str,
    mode: str,
    results: list[dict[str, Any]],
    duration_ms: float,
    session_id: str | None = None,
) -> None:
    details = {
        "query_preview": query[:120],
        "mode": mode,
        "results": results,
    }
    log_event(LOGGER, "retriever.search", session_id=session_id, duration_ms=duration_ms, details=details)


def emit_context_event(
    *,
    file_name: str,
    chunk_indices: Iterable[int],
    estimated_tokens: int,
    truncated: bool,
    session_id: str | None = None,
) -> None:
    details = {
        "file": file_name,
        "chunks": list(chunk_indices),
        "estimated_tokens": estimated_tokens,
        "truncated": truncated,
    }
    log_event(LOGGER, "context.assemble", session_id=session_id, details=details)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    session_id: str | None = None,
    file_name: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if file_name:
        details["file"] = file_name
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        session_id=session_id,
        details=details,
        exc=error,
    )


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_app_startup_event",
    "emit_context_event",
    "emit_exception",
    "emit_ingest_event",
    "emit_retriever_event",
    "log_event",
    "traced_duration",
]
