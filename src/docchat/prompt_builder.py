"""Utilities for embedding assembled document context into a system prompt."""
from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Sequence

from docchat.config import DEFAULT_SYSTEM_PROMPT

_PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
_SYSTEM_PROMPT_PATH = _PROMPTS_DIR / "system.txt"

CONTEXT_START = "=== DOCUMENT CONTENT BELOW ==="
CONTEXT_END = "=== END OF DOCUMENT CONTENT ==="
NO_CONTEXT_MESSAGE = (
    "No document content was provided due to token limits. "
    "Please inform the user and suggest they try with a more specific question."
)


def _load_template(path: Path) -> str:
    """Read and trim the contents of a template file."""
    return path.read_text(encoding="utf-8").strip()


_DOCUMENT_TEMPLATE = _load_template(_SYSTEM_PROMPT_PATH)


def build_system_prompt(
    context: str,
    *,
    file_name: str | None = None,
    base_prompt: str | None = None,
    entities_of_interest: Iterable[str] = (),
    pages_of_interest: Sequence[int] = (),
) -> str:
    """Compose the system prompt for a chat turn about an uploaded document.

    Without a ``file_name`` there is no document and only the base prompt is
    returned. Entities and pages of interest add emphasis lines only when the
    context actually mentions them.
    """

    sections = [(base_prompt if base_prompt is not None else DEFAULT_SYSTEM_PROMPT).strip()]
    if not file_name:
        return sections[0]

    sections.append(_DOCUMENT_TEMPLATE.format(file_name=file_name))

    folded_context = (context or "").casefold()
    for page in pages_of_interest:
        if re.search(rf"\bpage\s+{page}\s+of\b", folded_context):
            sections.append(
                f"IMPORTANT: Page {page} of this document contains significant information. "
                "Pay close attention to content from this page when relevant to the query."
            )
    for entity in entities_of_interest:
        if entity and entity.casefold() in folded_context:
            sections.append(
                f"IMPORTANT: This document contains information about {entity}. When discussing {entity}:\n"
                f"1. Bold the name **{entity}** in your responses.\n"
                "2. Provide specific square footage information when available.\n"
                f"3. Reference the specific pages where {entity} information appears."
            )

    body = context.strip() if context and context.strip() else NO_CONTEXT_MESSAGE
    sections.append(f"{CONTEXT_START}\n\n{body}\n\n{CONTEXT_END}")
    return "\n\n".join(section for section in sections if section)


__all__ = ["build_system_prompt", "CONTEXT_END", "CONTEXT_START", "NO_CONTEXT_MESSAGE"]
