"""
Entry-tag associations carrying a confidence weight.
"""

from __future__ import annotations

from kb.errors import NotFound
from kb.models import Entry, EntryTag, Tag
from kb.records import LinkedTag, TagRecord
from kb.services.shared import (
    _validate_confidence,
    _validate_identifier,
    dialect_insert,
    service_call,
    tag_record,
    upsert_call,
)


@upsert_call
def link_entry_tag(store, entry_id: str, tag_id: str, confidence: float = 1.0) -> LinkedTag:
    """Link a tag to an entry; re-linking the same pair replaces the confidence."""
    _validate_identifier(entry_id, "entry_id")
    _validate_identifier(tag_id, "tag_id")
    confidence_value = _validate_confidence(confidence, "confidence")

    db = store.SessionLocal()
    try:
        if db.get(Entry, entry_id) is None:
            raise NotFound(f"Entry not found: {entry_id}", kind="entry", ref=entry_id)
        tag = db.get(Tag, tag_id)
        if tag is None:
            raise NotFound(f"Tag not found: {tag_id}", kind="tag", ref=tag_id)

        insert = dialect_insert(db)
        stmt = insert(EntryTag.__table__).values(
            entry_id=entry_id,
            tag_id=tag_id,
            confidence=confidence_value,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["entry_id", "tag_id"],
            set_={"confidence": stmt.excluded.confidence},
        )
        db.execute(stmt)
        db.commit()
        return LinkedTag(tag=tag_record(tag), confidence=confidence_value)
    finally:
        db.close()


@service_call
def tags_of(store, entry_id: str) -> list[TagRecord]:
    return [linked.tag for linked in linked_tags_of(store, entry_id)]


@service_call
def linked_tags_of(store, entry_id: str) -> list[LinkedTag]:
    """Tags linked to an entry with their confidence, ordered by tag name."""
    _validate_identifier(entry_id, "entry_id")
    db = store.SessionLocal()
    try:
        rows = (
            db.query(Tag, EntryTag.confidence)
            .join(EntryTag, EntryTag.tag_id == Tag.id)
            .filter(EntryTag.entry_id == entry_id)
            .order_by(Tag.name, Tag.id)
            .all()
        )
        return [LinkedTag(tag=tag_record(tag), confidence=confidence) for tag, confidence in rows]
    finally:
        db.close()
