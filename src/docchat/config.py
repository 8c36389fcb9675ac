"""Environment-driven settings for the document context service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant answering questions about documents uploaded by the user."
)


def _int_from_env(name: str, default: int, *, minimum: int = 1) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default
    if parsed < minimum:
        LOGGER.warning("Value for %s below minimum %s: %s; using default %s", name, minimum, parsed, default)
        return default
    return parsed


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default
    if parsed <= 0:
        LOGGER.warning("Value for %s must be positive: %s; using default %s", name, parsed, default)
        return default
    return parsed


def _list_from_env(name: str) -> Tuple[str, ...]:
    value = os.getenv(name, "")
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _pages_from_env(name: str) -> Tuple[int, ...]:
    pages: list[int] = []
    for item in _list_from_env(name):
        try:
            page = int(item)
        except ValueError:
            LOGGER.warning("Ignoring invalid page number in %s: %s", name, item)
            continue
        if page > 0 and page not in pages:
            pages.append(page)
    return tuple(pages)


@dataclass(frozen=True)
class Settings:
    max_context_tokens: int
    chars_per_token: float
    chunk_chars: int
    large_chunk_chars: int
    very_large_chunk_chars: int
    large_document_chars: int
    very_large_document_chars: int
    entities_of_interest: Tuple[str, ...]
    pages_of_interest: Tuple[int, ...]
    system_prompt: str
    log_dir: str


@lru_cache
def get_settings() -> Settings:
    return Settings(
        max_context_tokens=_int_from_env("DOCCHAT_MAX_CONTEXT_TOKENS", 12_000),
        chars_per_token=_float_from_env("DOCCHAT_CHARS_PER_TOKEN", 4.0),
        chunk_chars=_int_from_env("DOCCHAT_CHUNK_CHARS", 500),
        large_chunk_chars=_int_from_env("DOCCHAT_LARGE_CHUNK_CHARS", 200),
        very_large_chunk_chars=_int_from_env("DOCCHAT_VERY_LARGE_CHUNK_CHARS", 150),
        large_document_chars=_int_from_env("DOCCHAT_LARGE_DOCUMENT_CHARS", 100_000),
        very_large_document_chars=_int_from_env("DOCCHAT_VERY_LARGE_DOCUMENT_CHARS", 300_000),
        entities_of_interest=_list_from_env("DOCCHAT_ENTITIES_OF_INTEREST"),
        pages_of_interest=_pages_from_env("DOCCHAT_PAGES_OF_INTEREST"),
        system_prompt=os.getenv("DOCCHAT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
        log_dir=os.getenv("DOCCHAT_LOG_DIR", "logs"),
    )
