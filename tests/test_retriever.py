from docchat.ingest.models import Document
from docchat.ingest.pipeline import IngestPipeline
from docchat.query import SearchQuery, analyze_query
from docchat.retriever import Retriever, fallback_indices, is_entity_like, result_floor, score_chunk


def _paged_document(pages, total=50):
    text = "\n\n".join(f"[PAGE {page} OF {total}]\nContent for page {page}." for page in pages)
    return IngestPipeline().ingest(text, "lease.txt")


def test_entity_like_keywords():
    assert is_entity_like("Acme")
    assert is_entity_like("lease terms")
    assert not is_entity_like("acme")
    assert not is_entity_like("AB")


def test_entity_keywords_are_weighted_with_fuzzy_bonus():
    assert score_chunk("Acme Corp leases space", ["Acme Corp"]) == 8
    assert score_chunk("the acme-corp account", ["Acme Corp"]) == 4
    assert score_chunk("nothing relevant", ["Acme Corp"]) == 0


def test_plain_terms_count_occurrences_with_proximity_bonus():
    assert score_chunk("rent is due; the rent increases", ["rent", "increases"]) == 7
    assert score_chunk("rent is due", ["rent", "increases"]) == 1


def test_term_in_a_single_chunk_is_retrieved(make_document):
    chunks = [f"Filler paragraph number {position}." for position in range(30)]
    chunks[17] = "The escalation clause raises rent yearly."
    document = make_document(chunks)

    result = Retriever().retrieve(document, analyze_query("What is the escalation clause?"))

    assert result.mode == "keyword"
    assert result.indices[0] == 17
    assert len(result.chunks) == 8


def test_ties_keep_document_order(make_document):
    document = make_document(["rent a", "rent b", "rent c"])

    result = Retriever().retrieve(document, SearchQuery(raw_text="rent", terms=("rent",)))

    assert result.indices == (0, 1, 2)


def test_large_documents_use_a_higher_floor(make_document):
    chunks = [f"Filler paragraph number {position}." for position in range(120)]
    chunks[5] = "The rent is due monthly."
    document = make_document(chunks)

    result = Retriever().retrieve(document, SearchQuery(raw_text="rent", terms=("rent",)))

    assert result_floor(120) == 12
    assert len(result.chunks) == 12
    assert result.indices[0] == 5


def test_unmatched_queries_sample_across_the_document(make_document):
    document = make_document([f"Filler paragraph number {position}." for position in range(10)])

    result = Retriever().retrieve(document, analyze_query("zzzz qqqq"))

    assert result.mode == "fallback"
    assert result.indices == (0, 1, 2, 4, 5, 6)


def test_fallback_indices():
    assert fallback_indices(0) == []
    assert fallback_indices(2) == [0, 1]
    assert fallback_indices(300) == [0, 1, 2, 149, 150, 151, 297, 298, 299]


def test_requested_page_chunks_are_returned():
    document = _paged_document(range(40, 45))

    result = Retriever().retrieve(document, analyze_query("What is on page 42?"))

    assert result.mode == "page"
    assert result.indices[0] == 2
    assert 42 in document.chunk_metadata[result.indices[0]].pages


def test_nearby_pages_are_used_when_the_page_is_missing():
    document = _paged_document(range(40, 45))

    result = Retriever().retrieve(document, analyze_query("page 46"))

    assert result.mode == "page_window"
    assert result.indices == (4,)


def test_page_window_is_capped(make_document):
    document = make_document(
        [f"Schedule part {position}" for position in range(12)],
        pages={position: [5] for position in range(12)},
    )

    result = Retriever().retrieve(document, SearchQuery(raw_text="page 3", requested_pages=(3,)))

    assert result.mode == "page_window"
    assert result.indices == tuple(range(8))


def test_unknown_pages_fall_back_to_keyword_search():
    document = _paged_document(range(1, 4), total=3)

    result = Retriever().retrieve(document, analyze_query("page 50 content"))

    assert result.mode == "keyword"


def test_empty_document_returns_no_chunks():
    result = Retriever().retrieve(Document(file_name="empty.txt"), analyze_query("anything"))

    assert result.mode == "fallback"
    assert result.chunks == ()
