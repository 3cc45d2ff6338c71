"""
Dependency helpers for the FastAPI app.
"""

from __future__ import annotations

from typing import Optional

from kb.db import DB, Store
from kb.errors import StorageUnavailable
from kb.providers.classifier import Classifier, get_classifier
from kb.providers.embedder import Embedder, get_embedder


def get_store() -> Store:
    if DB.store is None:
        raise StorageUnavailable("Database not initialized - store is None")
    return DB.store


def get_classifier_dep() -> Optional[Classifier]:
    return get_classifier()


def get_embedder_dep() -> Optional[Embedder]:
    return get_embedder()
