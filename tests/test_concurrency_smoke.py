import os
from concurrent.futures import ThreadPoolExecutor

os.environ.setdefault("KB_DB_BACKEND", "sqlite")

from conftest import StubClassifier, StubEmbedder, suggestion

from kb.capture import capture_entry
from kb.models import EntryTag, Tag
from kb.services import entries, tags


def test_capture_concurrency(store):
    classifier = StubClassifier(
        [
            suggestion("golang", parent="programming", confidence=0.9),
            suggestion("concurrency", parent="programming", confidence=0.7),
        ]
    )
    embedder = StubEmbedder()

    def _capture(text: str):
        return capture_entry(store, text, classifier=classifier, embedder=embedder)

    texts = [f"Concurrent observation {i}" for i in range(8)]
    with ThreadPoolExecutor(max_workers=4) as executor:
        results = list(executor.map(_capture, texts))

    assert all(len(result.tags) == 2 for result in results)
    assert len(entries.list_entries(store, limit=100)) == 8
    assert sorted(tag.name for tag in tags.list_tags(store)) == ["concurrency", "golang", "programming"]

    db = store.SessionLocal()
    try:
        assert db.query(Tag).count() == 3
        assert db.query(EntryTag).count() == 16
    finally:
        db.close()
