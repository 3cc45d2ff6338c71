"""
Entry repository: create, read, list, search and delete captured text.
"""

from __future__ import annotations

from typing import Optional

from kb.config import (
    DEFAULT_LIST_LIMIT,
    MAX_CONTENT_LENGTH,
    MAX_QUERY_LENGTH,
    MAX_RESULT_LIMIT,
    PREFIX_LOOKUP_WINDOW,
)
from kb.errors import NotFound
from kb.models import Entry, EntryTag, Tag, new_id, utcnow
from kb.records import EntryRecord
from kb.services.shared import (
    LIKE_ESCAPE,
    _clamp_limit,
    _validate_identifier,
    _validate_non_negative,
    _validate_required_text,
    entry_record,
    escape_like,
    logger,
    service_call,
)
from kb.services.tags import _descendant_ids


def _newest_first(query):
    return query.order_by(Entry.created_at.desc(), Entry.id.asc())


def _entry_tags(db, entry_id: str) -> list[Tag]:
    return (
        db.query(Tag)
        .join(EntryTag, EntryTag.tag_id == Tag.id)
        .filter(EntryTag.entry_id == entry_id)
        .order_by(Tag.name, Tag.id)
        .all()
    )


def _get_or_raise(db, entry_id: str) -> Entry:
    entry = db.get(Entry, entry_id)
    if entry is None:
        raise NotFound(f"Entry not found: {entry_id}", kind="entry", ref=entry_id)
    return entry


@service_call
def create_entry(store, content: str) -> EntryRecord:
    """Store a new entry. Content is kept verbatim; tags and embeddings are separate steps."""
    _validate_required_text(content, "content", MAX_CONTENT_LENGTH)

    db = store.SessionLocal()
    try:
        entry = Entry(id=new_id(), content=content, created_at=utcnow())
        db.add(entry)
        db.commit()
        logger.info("entry_created", extra={"entry_id": entry.id, "length": len(content)})
        return entry_record(entry)
    finally:
        db.close()


@service_call
def get_entry(store, entry_id: str) -> EntryRecord:
    """Fetch one entry by exact id, with its tags."""
    _validate_identifier(entry_id, "entry_id")
    db = store.SessionLocal()
    try:
        entry = _get_or_raise(db, entry_id)
        return entry_record(entry, _entry_tags(db, entry.id))
    finally:
        db.close()


@service_call
def list_entries(store, limit: Optional[int] = None, offset: int = 0) -> list[EntryRecord]:
    limit_value = _clamp_limit(limit, "limit", DEFAULT_LIST_LIMIT, MAX_RESULT_LIMIT)
    _validate_non_negative(offset, "offset")

    db = store.SessionLocal()
    try:
        rows = _newest_first(db.query(Entry)).offset(offset).limit(limit_value).all()
        return [entry_record(entry) for entry in rows]
    finally:
        db.close()


@service_call
def list_entries_by_tag(store, tag_id: str, include_descendants: bool = True) -> list[EntryRecord]:
    """Entries linked to a tag, or to the tag or any of its descendants."""
    _validate_identifier(tag_id, "tag_id")
    db = store.SessionLocal()
    try:
        if db.get(Tag, tag_id) is None:
            raise NotFound(f"Tag not found: {tag_id}", kind="tag", ref=tag_id)
        tag_ids = _descendant_ids(db, tag_id) if include_descendants else [tag_id]
        matching = db.query(EntryTag.entry_id).filter(EntryTag.tag_id.in_(tag_ids))
        rows = _newest_first(db.query(Entry).filter(Entry.id.in_(matching))).all()
        return [entry_record(entry) for entry in rows]
    finally:
        db.close()


@service_call
def search_entries(store, query: str) -> list[EntryRecord]:
    """Case-insensitive substring match over content, newest first. No ranking."""
    _validate_required_text(query, "query", MAX_QUERY_LENGTH)
    pattern = f"%{escape_like(query)}%"

    db = store.SessionLocal()
    try:
        rows = _newest_first(
            db.query(Entry).filter(Entry.content.ilike(pattern, escape=LIKE_ESCAPE))
        ).all()
        return [entry_record(entry) for entry in rows]
    finally:
        db.close()


@service_call
def delete_entry(store, entry_id: str) -> None:
    """Delete an entry; its tag links and embedding go with it."""
    _validate_identifier(entry_id, "entry_id")
    db = store.SessionLocal()
    try:
        entry = _get_or_raise(db, entry_id)
        db.delete(entry)
        db.commit()
        logger.info("entry_deleted", extra={"entry_id": entry_id})
    finally:
        db.close()


@service_call
def touch_viewed(store, entry_id: str) -> EntryRecord:
    """Mark an entry as viewed now."""
    _validate_identifier(entry_id, "entry_id")
    db = store.SessionLocal()
    try:
        entry = _get_or_raise(db, entry_id)
        entry.last_viewed_at = utcnow()
        db.commit()
        return entry_record(entry, _entry_tags(db, entry.id))
    finally:
        db.close()


@service_call
def resolve_entry_prefix(store, prefix: str, window: int = PREFIX_LOOKUP_WINDOW) -> str:
    """
    Resolve a short id (as printed by the CLI) to a full entry id.

    An exact id always resolves. Otherwise only the `window` most recent
    entries are considered, newest first.
    """
    _validate_identifier(prefix, "id")
    _validate_non_negative(window, "window")
    value = prefix.strip()

    db = store.SessionLocal()
    try:
        if db.get(Entry, value) is not None:
            return value
        recent = _newest_first(db.query(Entry.id)).limit(window).all()
        for (entry_id,) in recent:
            if entry_id.startswith(value):
                return entry_id
        raise NotFound(f"Entry not found: {value}", kind="entry", ref=value)
    finally:
        db.close()
