import pytest

from docchat.context_builder import (
    MAX_HEADER_OVERHEAD,
    AssembledContext,
    CharRatioEstimator,
    ContextAssembler,
    format_page_ranges,
    highlight,
    render_chunk,
)
from docchat.ingest.models import Document
from docchat.ingest.pipeline import IngestPipeline
from docchat.query import SearchQuery, analyze_query
from docchat.retriever import RankedChunk


def _filler(count: int, width: int = 100) -> list[str]:
    return [f"Paragraph body {position:03d} ".ljust(width, "x") for position in range(count)]


def test_char_ratio_estimator():
    estimator = CharRatioEstimator(4)

    assert estimator.estimate_tokens("abcdefghi") == 3
    assert estimator.chars_for_tokens(10) == 40
    with pytest.raises(ValueError):
        CharRatioEstimator(0)


def test_format_page_ranges():
    assert format_page_ranges([7, 1, 2, 3, 9, 10]) == "1-3, 7, 9-10"
    assert format_page_ranges([]) == ""


def test_highlight_marks_pages_and_entities():
    text = "See [PAGE 3 OF 9] for Acme Corp terms"

    assert highlight(text, ["Acme Corp"]) == "See ### [DOCUMENT PAGE 3 of 9] ### for **Acme Corp** terms"


def test_chunks_without_pages_get_a_positional_label(make_document):
    document = make_document(["first", "second", "third"], entities={1: ["Acme Corp"]})

    assert render_chunk(document, 0).startswith("--- DOCUMENT CHUNK 1 OF 3 (BEGINNING) ---\nfirst")
    assert render_chunk(document, 1).startswith("--- DOCUMENT CHUNK 2 OF 3 (MIDDLE) --- [ENTITIES: Acme Corp]\n")
    assert render_chunk(document, 2).startswith("--- DOCUMENT CHUNK 3 OF 3 (END) ---")


def test_empty_document_produces_empty_context():
    context = ContextAssembler().assemble(Document(file_name="empty.txt"), analyze_query("hello"))

    assert context == AssembledContext()
    assert context.text == ""


def test_small_document_is_included_in_full():
    document = IngestPipeline().ingest("Intro paragraph.\n\nSecond paragraph.", "notes.txt")

    context = ContextAssembler().assemble(document, analyze_query("hello"))

    assert context.text.startswith("Document: notes.txt\n")
    assert "--- DOCUMENT CHUNK 1 OF 1 (BEGINNING) ---" in context.text
    assert "Intro paragraph.\n\nSecond paragraph." in context.text
    assert context.chunk_indices == (0,)
    assert not context.truncated


def test_page_document_header_lists_pages():
    text = "\n\n".join(f"[PAGE {page} OF 5]\nText of page {page}." for page in range(1, 6))
    document = IngestPipeline().ingest(text, "report.txt")

    context = ContextAssembler().assemble(document, analyze_query("What is on page 2?"))

    assert "The included content covers pages: 1-5" in context.text
    assert "You specifically requested information from page(s): 2" in context.text
    assert "### [DOCUMENT PAGE 2 of 5] ###" in context.text
    assert context.chunk_indices[0] == 1
    assert context.pages == (1, 2, 3, 4, 5)


def test_context_length_is_bounded(make_document):
    document = make_document(
        _filler(400),
        entities={position: ["Entity " + "y" * 80] for position in range(0, 400, 7)},
        file_name="z" * 1000,
    )
    assembler = ContextAssembler(max_context_tokens=500)

    context = assembler.assemble(document, analyze_query("pages 1-150 about Entity"))

    assert context.truncated
    assert context.chunk_indices
    assert len(context.text) <= assembler.budget_chars + MAX_HEADER_OVERHEAD


def test_regular_chunks_are_spread_across_the_document(make_document):
    document = make_document(_filler(100))
    assembler = ContextAssembler(max_context_tokens=1600, estimator=CharRatioEstimator(1))

    context = assembler.assemble(document, analyze_query("unrelated"))

    assert context.truncated
    assert context.chunk_indices[0] == 0
    assert max(context.chunk_indices) >= 80
    assert 5 <= len(context.chunk_indices) <= 11


def test_requested_pages_are_selected_first(make_document):
    document = make_document(_filler(50), pages={30: [42]})
    assembler = ContextAssembler(max_context_tokens=400, estimator=CharRatioEstimator(1))

    context = assembler.assemble(document, SearchQuery(raw_text="page 42", requested_pages=(42,)))

    assert context.chunk_indices[0] == 30
    assert "--- DOCUMENT CONTENT FROM PAGE(S) 42 ---" in context.text


def test_entities_named_in_the_query_are_high_priority(make_document):
    document = make_document(_filler(50), entities={7: ["Acme Corp"]})
    assembler = ContextAssembler(max_context_tokens=400, estimator=CharRatioEstimator(1))

    context = assembler.assemble(document, analyze_query("Tell me about acme"))

    assert context.chunk_indices[0] == 7
    assert "Pay attention to these important entities in the document: Acme Corp." in context.text


def test_pages_of_interest_are_high_priority(make_document):
    document = make_document(_filler(50), pages={44: [42]})
    assembler = ContextAssembler(max_context_tokens=400, estimator=CharRatioEstimator(1), pages_of_interest=(42,))

    context = assembler.assemble(document, analyze_query("anything"))

    assert context.chunk_indices[0] == 44


def test_retrieved_chunks_are_preferred_over_sampling(make_document):
    document = make_document(_filler(50))
    assembler = ContextAssembler(max_context_tokens=400, estimator=CharRatioEstimator(1))

    context = assembler.assemble(document, analyze_query("anything"), [RankedChunk(index=43, score=5)])

    assert 43 in context.chunk_indices
    assert context.truncated
