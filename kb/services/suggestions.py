"""
Suggestion engine: resurface entries that have not been looked at for a while.

Ordering is purely by staleness: never-viewed entries first, then the
least recently viewed, newest creation first among equals.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import case

from kb.config import DEFAULT_LIST_LIMIT, MAX_RESULT_LIMIT
from kb.errors import NotFound
from kb.models import Entry, EntryTag
from kb.records import EntryRecord
from kb.services.entries import touch_viewed
from kb.services.shared import (
    _clamp_limit,
    _validate_identifier,
    entry_record,
    service_call,
)


def _stalest_first(query):
    never_viewed_first = case((Entry.last_viewed_at.is_(None), 0), else_=1)
    return query.order_by(
        never_viewed_first,
        Entry.last_viewed_at.asc(),
        Entry.created_at.desc(),
        Entry.id.asc(),
    )


@service_call
def suggest(store, limit: Optional[int] = None) -> list[EntryRecord]:
    limit_value = _clamp_limit(limit, "limit", DEFAULT_LIST_LIMIT, MAX_RESULT_LIMIT)
    db = store.SessionLocal()
    try:
        rows = _stalest_first(db.query(Entry)).limit(limit_value).all()
        return [entry_record(entry) for entry in rows]
    finally:
        db.close()


@service_call
def similar_by_tags(store, entry_id: str, limit: Optional[int] = None) -> list[EntryRecord]:
    """Entries sharing at least one tag with entry_id, stalest first."""
    _validate_identifier(entry_id, "entry_id")
    limit_value = _clamp_limit(limit, "limit", DEFAULT_LIST_LIMIT, MAX_RESULT_LIMIT)

    db = store.SessionLocal()
    try:
        if db.get(Entry, entry_id) is None:
            raise NotFound(f"Entry not found: {entry_id}", kind="entry", ref=entry_id)
        own_tags = db.query(EntryTag.tag_id).filter(EntryTag.entry_id == entry_id)
        sharing = db.query(EntryTag.entry_id).filter(EntryTag.tag_id.in_(own_tags))
        rows = _stalest_first(
            db.query(Entry).filter(Entry.id.in_(sharing), Entry.id != entry_id)
        ).limit(limit_value).all()
        return [entry_record(entry) for entry in rows]
    finally:
        db.close()


def open_suggestion(store, entry_id: str) -> EntryRecord:
    """Record that a surfaced entry was opened, pushing it to the back of the queue."""
    return touch_viewed(store, entry_id)
