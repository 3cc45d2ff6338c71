"""
Embedding store and similarity engine.

Vectors are stored as little-endian float64 blobs, one per entry. Similarity
search is a brute-force cosine scan over every stored vector (O(n*d) per
query). That is fine for a personal knowledge base; past low tens of
thousands of entries it needs a real vector index.
"""

from __future__ import annotations

import heapq
import math
from typing import Optional, Sequence

import numpy as np

from kb.config import MAX_RESULT_LIMIT, SIMILAR_LIMIT, SIMILARITY_SCAN_BATCH
from kb.errors import NotFound, StorageUnavailable
from kb.models import Embedding, Entry, utcnow
from kb.records import EmbeddingRecord, EntryRecord, SimilarEntry
from kb.services.shared import (
    _clamp_limit,
    _validate_identifier,
    _validate_non_negative,
    _validate_required_text,
    _validate_vector,
    dialect_insert,
    entry_record,
    logger,
    service_call,
    upsert_call,
)

VECTOR_DTYPE = np.dtype("<f8")


def encode_vector(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype=VECTOR_DTYPE).tobytes()


def decode_vector(blob: bytes) -> np.ndarray:
    if len(blob) % VECTOR_DTYPE.itemsize:
        raise StorageUnavailable(f"corrupt embedding blob of {len(blob)} bytes")
    return np.frombuffer(blob, dtype=VECTOR_DTYPE)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|), clipped to [-1, 1].

    Returns 0.0 instead of failing when the vectors differ in length, are
    empty, or either has zero norm.
    """
    a_arr = np.asarray(a, dtype=np.float64)
    b_arr = np.asarray(b, dtype=np.float64)
    if a_arr.ndim != 1 or a_arr.shape != b_arr.shape or a_arr.size == 0:
        return 0.0
    norm_a = float(np.linalg.norm(a_arr))
    norm_b = float(np.linalg.norm(b_arr))
    denominator = norm_a * norm_b
    if denominator == 0.0 or not math.isfinite(denominator):
        return 0.0
    value = float(np.dot(a_arr, b_arr)) / denominator
    if not math.isfinite(value):
        return 0.0
    return max(-1.0, min(1.0, value))


@upsert_call
def save_embedding(store, entry_id: str, vector: Sequence[float], model: str) -> EmbeddingRecord:
    """Store the entry's vector, replacing any previous one (e.g. after a model change)."""
    _validate_identifier(entry_id, "entry_id")
    _validate_vector(vector, "vector")
    _validate_required_text(model, "model", 100)

    blob = encode_vector(vector)
    created_at = utcnow()
    db = store.SessionLocal()
    try:
        if db.get(Entry, entry_id) is None:
            raise NotFound(f"Entry not found: {entry_id}", kind="entry", ref=entry_id)

        insert = dialect_insert(db)
        stmt = insert(Embedding.__table__).values(
            entry_id=entry_id,
            vector=blob,
            model=model,
            created_at=created_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["entry_id"],
            set_={
                "vector": stmt.excluded.vector,
                "model": stmt.excluded.model,
                "created_at": stmt.excluded.created_at,
            },
        )
        db.execute(stmt)
        db.commit()
        logger.debug("embedding_saved", extra={"entry_id": entry_id, "dimensions": len(vector)})
        return EmbeddingRecord(
            entry_id=entry_id,
            vector=tuple(float(x) for x in vector),
            model=model,
            created_at=created_at,
        )
    finally:
        db.close()


@service_call
def get_embedding(store, entry_id: str) -> EmbeddingRecord:
    _validate_identifier(entry_id, "entry_id")
    db = store.SessionLocal()
    try:
        row = db.get(Embedding, entry_id)
        if row is None:
            raise NotFound(f"No embedding for entry: {entry_id}", kind="embedding", ref=entry_id)
        return EmbeddingRecord(
            entry_id=row.entry_id,
            vector=tuple(decode_vector(row.vector).tolist()),
            model=row.model,
            created_at=row.created_at,
        )
    finally:
        db.close()


@service_call
def find_similar(
    store,
    query_vector: Sequence[float],
    limit: int = SIMILAR_LIMIT,
    exclude_id: Optional[str] = None,
) -> list[SimilarEntry]:
    """
    Rank stored entries by cosine similarity to query_vector.

    Ties are broken by entry id so the ranking is deterministic. The
    excluded entry never appears, even when its vector equals the query.
    """
    _validate_non_negative(limit, "limit")
    _validate_vector(query_vector, "query_vector")
    limit_value = min(limit, MAX_RESULT_LIMIT)
    if limit_value == 0:
        return []
    query = np.asarray(query_vector, dtype=np.float64)

    db = store.SessionLocal()
    try:
        rows = db.query(Embedding.entry_id, Embedding.vector)
        if exclude_id is not None:
            rows = rows.filter(Embedding.entry_id != exclude_id)

        scored = []
        for entry_id, blob in rows.yield_per(SIMILARITY_SCAN_BATCH):
            try:
                stored = decode_vector(blob)
            except StorageUnavailable:
                logger.warning("corrupt_embedding_skipped", extra={"entry_id": entry_id, "bytes": len(blob)})
                continue
            scored.append((cosine_similarity(query, stored), entry_id))

        top = heapq.nsmallest(limit_value, scored, key=lambda item: (-item[0], item[1]))
        if not top:
            return []

        entries = {
            entry.id: entry
            for entry in db.query(Entry).filter(Entry.id.in_([entry_id for _, entry_id in top])).all()
        }
        return [
            SimilarEntry(entry=entry_record(entries[entry_id]), similarity=similarity)
            for similarity, entry_id in top
            if entry_id in entries
        ]
    finally:
        db.close()


def find_similar_to_entry(store, entry_id: str, limit: int = SIMILAR_LIMIT) -> list[SimilarEntry]:
    """Entries whose embeddings resemble the stored embedding of entry_id."""
    embedding = get_embedding(store, entry_id)
    return find_similar(store, embedding.vector, limit=limit, exclude_id=entry_id)


@service_call
def entries_missing_embeddings(store, limit: Optional[int] = None) -> list[EntryRecord]:
    limit_value = _clamp_limit(limit, "limit", MAX_RESULT_LIMIT, MAX_RESULT_LIMIT)
    db = store.SessionLocal()
    try:
        rows = (
            db.query(Entry)
            .outerjoin(Embedding, Embedding.entry_id == Entry.id)
            .filter(Embedding.entry_id.is_(None))
            .order_by(Entry.created_at.desc(), Entry.id.asc())
            .limit(limit_value)
            .all()
        )
        return [entry_record(entry) for entry in rows]
    finally:
        db.close()

