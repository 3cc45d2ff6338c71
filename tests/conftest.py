import os

os.environ.setdefault("KB_DB_BACKEND", "sqlite")
os.environ.setdefault("KB_UPSERT_RETRY_BACKOFF_SECONDS", "0.01")
os.environ.setdefault("PROVIDER_RETRY_MAX", "0")
# Never reach the real providers from the test suite.
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["VOYAGE_API_KEY"] = ""

import pytest

from kb.config import sqlite_url
from kb.db import DB, Store, open_store
from kb.errors import ClassificationUnavailable, EmbeddingUnavailable
from kb.models import Base
from kb.providers.classifier import TagSuggestion


class StubClassifier:
    """Returns canned suggestions and records what it was asked."""

    def __init__(self, suggestions=None, error=None):
        self.suggestions = list(suggestions or [])
        self.error = error
        self.calls = []

    def classify(self, content, known_tags):
        self.calls.append((content, list(known_tags)))
        if self.error:
            raise ClassificationUnavailable(self.error)
        return list(self.suggestions)


class StubEmbedder:
    """Letter-frequency vectors, or fixed vectors for known texts."""

    model = "stub-embedding"

    def __init__(self, vectors=None, error=None):
        self.vectors = dict(vectors or {})
        self.error = error
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        if self.error:
            raise EmbeddingUnavailable(self.error)
        if text in self.vectors:
            return list(self.vectors[text])
        counts = [0.0] * 26
        for char in text.lower():
            if "a" <= char <= "z":
                counts[ord(char) - ord("a")] += 1.0
        return counts


def suggestion(name, parent=None, confidence=0.9):
    return TagSuggestion(name=name, parent=parent, confidence=confidence)


@pytest.fixture
def store(tmp_path):
    db_store = Store(sqlite_url(str(tmp_path / "kb.sqlite")))
    Base.metadata.create_all(db_store.engine)
    try:
        yield db_store
    finally:
        db_store.dispose()


@pytest.fixture
def migrated_store(tmp_path):
    db_store = open_store(sqlite_url(str(tmp_path / "migrated.sqlite")))
    try:
        yield db_store
    finally:
        db_store.dispose()


@pytest.fixture
def server_db(store):
    previous = DB.store
    DB.store = store
    try:
        yield store
    finally:
        DB.store = previous


@pytest.fixture
def stub_classifier():
    return StubClassifier(
        [
            suggestion("golang", parent="programming", confidence=0.95),
            suggestion("concurrency", parent="programming", confidence=0.8),
        ]
    )


@pytest.fixture
def stub_embedder():
    return StubEmbedder()
