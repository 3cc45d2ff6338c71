"""
The "new entry" flow: store the entry, then tag it and embed it as two
independent best-effort steps.

The entry is committed first and is never rolled back. Classifier and
embedder failures are logged and reported in CaptureResult.degraded; they
never fail the capture.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import kb.config as config
from kb.errors import (
    ClassificationUnavailable,
    ConflictRetryable,
    EmbeddingUnavailable,
    InvalidInput,
    NotFound,
)
from kb.providers.classifier import Classifier
from kb.providers.embedder import Embedder
from kb.records import EntryRecord, SimilarEntry
from kb.services import associations, embeddings, entries, tags

logger = config.logger

# Errors that spoil one tag or one vector but leave the rest of the capture intact.
_STEP_ERRORS = (ConflictRetryable, InvalidInput, NotFound)


@dataclass(frozen=True)
class AppliedTag:
    tag_id: str
    name: str
    parent: Optional[str]
    confidence: float


@dataclass
class CaptureResult:
    entry: EntryRecord
    tags: list[AppliedTag] = field(default_factory=list)
    similar: list[SimilarEntry] = field(default_factory=list)
    degraded: list[str] = field(default_factory=list)

    @property
    def classified(self) -> bool:
        return bool(self.tags)

    @property
    def embedded(self) -> bool:
        return not any(note.startswith("embedding") for note in self.degraded)


def _degrade(result: CaptureResult, step: str, detail: str) -> None:
    logger.warning("capture_degraded", extra={"entry_id": result.entry.id, "step": step, "detail": detail})
    result.degraded.append(f"{step}: {detail}")


def apply_classification(store, result: CaptureResult, classifier: Classifier) -> None:
    known_tags = [tag.name for tag in tags.list_tags(store)]
    try:
        suggestions = list(classifier.classify(result.entry.content, known_tags))
    except ClassificationUnavailable as exc:
        _degrade(result, "classification", str(exc))
        return

    for suggestion in suggestions:
        name = tags.normalize_tag_name(suggestion.name)
        if not name:
            continue
        parent_name = tags.normalize_tag_name(suggestion.parent) if suggestion.parent else None
        parent_id = None
        if parent_name and parent_name != name:
            try:
                parent_id = tags.get_or_create_tag(store, parent_name).id
            except _STEP_ERRORS as exc:
                _degrade(result, "classification", f"couldn't create parent tag {parent_name}: {exc}")
                parent_name = None
        else:
            parent_name = None

        try:
            tag = tags.get_or_create_tag(store, name, parent_id)
            associations.link_entry_tag(store, result.entry.id, tag.id, suggestion.confidence)
        except _STEP_ERRORS as exc:
            _degrade(result, "classification", f"couldn't link tag {name}: {exc}")
            continue

        result.tags.append(
            AppliedTag(tag_id=tag.id, name=tag.name, parent=parent_name, confidence=suggestion.confidence)
        )

    logger.info("entry_classified", extra={"entry_id": result.entry.id, "tag_count": len(result.tags)})


def apply_embedding(store, result: CaptureResult, embedder: Embedder, similar_limit: int) -> None:
    try:
        vector = embedder.embed(result.entry.content)
    except EmbeddingUnavailable as exc:
        _degrade(result, "embedding", str(exc))
        return

    try:
        embeddings.save_embedding(store, result.entry.id, vector, embedder.model)
    except _STEP_ERRORS as exc:
        _degrade(result, "embedding", f"couldn't save embedding: {exc}")
        return

    result.similar = embeddings.find_similar(
        store,
        vector,
        limit=similar_limit,
        exclude_id=result.entry.id,
    )


def capture_entry(
    store,
    content: str,
    classifier: Optional[Classifier] = None,
    embedder: Optional[Embedder] = None,
    classify: bool = True,
    similar_limit: int = config.SIMILAR_LIMIT,
) -> CaptureResult:
    """
    Create an entry, then classify and embed it.

    Raises InvalidInput for empty content and StorageUnavailable if the
    store fails; collaborator problems only show up in `degraded`.
    """
    entry = entries.create_entry(store, content)
    result = CaptureResult(entry=entry)

    if not classify:
        result.degraded.append("classification: skipped")
    elif classifier is None:
        result.degraded.append("classification: no classifier configured")
    else:
        apply_classification(store, result, classifier)
        result.entry = entries.get_entry(store, entry.id)

    if embedder is None:
        result.degraded.append("embedding: no embedder configured")
    else:
        apply_embedding(store, result, embedder, similar_limit)

    return result


def backfill_embeddings(store, embedder: Embedder, limit: Optional[int] = None) -> dict:
    """Embed entries that have no vector yet. Stops early if the provider goes away."""
    batch_limit = limit if limit is not None else config.EMBEDDING_BACKFILL_BATCH_LIMIT
    if batch_limit <= 0:
        return {"status": "skipped", "reason": "batch_limit_disabled"}

    processed = 0
    backfilled = 0
    skipped = 0
    for entry in embeddings.entries_missing_embeddings(store, batch_limit):
        processed += 1
        try:
            vector = embedder.embed(entry.content)
        except EmbeddingUnavailable as exc:
            logger.warning(f"Embedding backfill stopped: {exc}")
            return {
                "status": "partial",
                "reason": str(exc),
                "processed": processed,
                "backfilled": backfilled,
                "skipped_count": skipped + 1,
            }
        try:
            embeddings.save_embedding(store, entry.id, vector, embedder.model)
        except _STEP_ERRORS as exc:
            logger.warning(f"Embedding backfill skipped {entry.id}: {exc}")
            skipped += 1
            continue
        backfilled += 1

    return {
        "status": "ok",
        "processed": processed,
        "backfilled": backfilled,
        "skipped_count": skipped,
    }
