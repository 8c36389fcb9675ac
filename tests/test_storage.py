from concurrent.futures import ThreadPoolExecutor

from docchat.ingest.models import Document
from docchat.storage import InMemoryDocumentStore


def test_put_get_and_clear(make_document) -> None:
    store = InMemoryDocumentStore()
    document = make_document(["chunk"])

    assert store.put("session", document)
    assert store.get("session") is document
    assert store.clear("session")
    assert store.get("session") is None
    assert not store.clear("session")


def test_invalid_documents_and_keys_are_refused(make_document) -> None:
    store = InMemoryDocumentStore()

    assert not store.put("", make_document(["chunk"]))
    assert not store.put("session", Document(file_name="empty.txt"))
    assert len(store) == 0


def test_concurrent_writes_are_all_kept(make_document) -> None:
    store = InMemoryDocumentStore()
    document = make_document(["chunk"])

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda key: store.put(f"session-{key}", document), range(50)))

    assert all(results)
    assert len(store) == 50
