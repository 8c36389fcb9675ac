"""Query analysis: search terms, phrases, named entities and page references."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from docchat.ingest.enrichment import extract_named_entities

LOGGER = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[\w'\-]+")
_PAGE_REQUEST_RE = re.compile(
    r"\bpages?\s*(\d+)\s*(?:-|–|to|through)\s*(\d+)"
    r"|\bpages?\s*(\d+)"
    r"|\bp\.\s*(\d+)"
    r"|\bp\s*(\d+)\b",
    re.IGNORECASE,
)

MIN_TERM_LENGTH = 4
MIN_TWO_WORD_PHRASE_LENGTH = 6
MIN_THREE_WORD_PHRASE_LENGTH = 9
MAX_PAGE_RANGE = 200

STOP_WORDS = frozenset(
    {
        "a", "about", "again", "all", "an", "and", "any", "are", "at", "be", "been",
        "being", "both", "but", "by", "can", "could", "did", "do", "does", "don't",
        "each", "else", "few", "for", "from", "further", "had", "has", "have", "here",
        "how", "if", "in", "is", "it's", "its", "just", "may", "might", "more", "most",
        "must", "now", "of", "off", "on", "once", "or", "other", "out", "over", "shall",
        "should", "some", "such", "than", "that", "the", "their", "them", "then",
        "there", "these", "they", "this", "those", "to", "too", "under", "very", "was",
        "were", "what", "when", "where", "which", "who", "whom", "why", "will", "with",
        "would",
    }
)


@dataclass(frozen=True, slots=True)
class SearchQuery:
    """Search criteria derived from a single user message."""

    raw_text: str = ""
    terms: Tuple[str, ...] = ()
    phrases: Tuple[str, ...] = ()
    entities: Tuple[str, ...] = ()
    requested_pages: Tuple[int, ...] = ()

    @property
    def keywords(self) -> Tuple[str, ...]:
        return self.terms + self.phrases + self.entities

    @property
    def is_empty(self) -> bool:
        return not (self.keywords or self.requested_pages)


def tokenize(text: str | None) -> List[str]:
    """Split ``text`` on whitespace and punctuation, keeping inner apostrophes and hyphens."""

    if not text:
        return []
    tokens = (token.strip("-'") for token in _TOKEN_RE.findall(text))
    return [token for token in tokens if token]


def _unique(values: Iterable) -> Tuple:
    return tuple(dict.fromkeys(values))


def extract_terms(tokens: Iterable[str]) -> Tuple[str, ...]:
    folded = (token.casefold() for token in tokens)
    return _unique(token for token in folded if len(token) >= MIN_TERM_LENGTH and token not in STOP_WORDS)


def extract_phrases(tokens: List[str]) -> Tuple[str, ...]:
    words = [token.lower() for token in tokens]
    phrases: List[str] = []
    for position in range(len(words) - 1):
        pair = f"{words[position]} {words[position + 1]}"
        if len(pair) >= MIN_TWO_WORD_PHRASE_LENGTH:
            phrases.append(pair)
        if position + 2 < len(words):
            triple = f"{pair} {words[position + 2]}"
            if len(triple) >= MIN_THREE_WORD_PHRASE_LENGTH:
                phrases.append(triple)
    return _unique(phrases)


def extract_requested_pages(text: str | None) -> Tuple[int, ...]:
    """Return explicitly requested page numbers in first-seen order.

    Ranges such as ``pages 3-5`` are expanded inclusively. Reversed ranges,
    ranges wider than :data:`MAX_PAGE_RANGE` and page zero are ignored.
    """

    if not text:
        return ()

    pages: List[int] = []
    for match in _PAGE_REQUEST_RE.finditer(text):
        if match.group(1) is not None:
            first, last = int(match.group(1)), int(match.group(2))
            if first < 1 or last < first or last - first + 1 > MAX_PAGE_RANGE:
                LOGGER.debug("Ignoring page range %s-%s", first, last)
                continue
            pages.extend(range(first, last + 1))
            continue
        number = next(group for group in match.groups()[2:] if group is not None)
        if int(number) > 0:
            pages.append(int(number))
    return _unique(pages)


class QueryAnalyzer:
    """Turn a natural-language message into a :class:`SearchQuery`.

    ``pages_of_interest`` are added to the requested pages whenever the
    message mentions the bare page number.
    """

    def __init__(self, pages_of_interest: Iterable[int] = ()) -> None:
        self.pages_of_interest = tuple(pages_of_interest)

    def analyze(self, text: str | None) -> SearchQuery:
        raw_text = text or ""
        tokens = tokenize(raw_text)

        requested = list(extract_requested_pages(raw_text))
        for page in self.pages_of_interest:
            if str(page) in tokens and page not in requested:
                requested.append(page)

        entities: Dict[str, str] = {}
        for entity in extract_named_entities(raw_text):
            entities.setdefault(entity.casefold(), entity)

        query = SearchQuery(
            raw_text=raw_text,
            terms=extract_terms(tokens),
            phrases=extract_phrases(tokens),
            entities=tuple(entities.values()),
            requested_pages=tuple(requested),
        )
        LOGGER.debug(
            "Analyzed query: %s terms, %s phrases, %s entities, pages=%s",
            len(query.terms),
            len(query.phrases),
            len(query.entities),
            list(query.requested_pages),
        )
        return query


def analyze_query(text: str | None, *, pages_of_interest: Optional[Iterable[int]] = None) -> SearchQuery:
    return QueryAnalyzer(pages_of_interest or ()).analyze(text)


__all__ = [
    "QueryAnalyzer",
    "STOP_WORDS",
    "SearchQuery",
    "analyze_query",
    "extract_phrases",
    "extract_requested_pages",
    "extract_terms",
    "tokenize",
]
