from datetime import datetime, timedelta, timezone

import pytest

from kb.errors import NotFound
from kb.models import Entry
from kb.services import associations, entries, suggestions, tags


def _set_times(store, entry_id, created_at, last_viewed_at=None):
    db = store.SessionLocal()
    try:
        row = db.get(Entry, entry_id)
        row.created_at = created_at
        row.last_viewed_at = last_viewed_at
        db.commit()
    finally:
        db.close()


def test_suggest_orders_never_viewed_then_stalest(store):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    e1 = entries.create_entry(store, "viewed yesterday")
    e2 = entries.create_entry(store, "never viewed")
    e3 = entries.create_entry(store, "viewed a week ago")
    _set_times(store, e1.id, base, base + timedelta(days=30))
    _set_times(store, e2.id, base + timedelta(days=1))
    _set_times(store, e3.id, base + timedelta(days=2), base + timedelta(days=24))

    ordered = suggestions.suggest(store, limit=10)
    assert [entry.id for entry in ordered] == [e2.id, e3.id, e1.id]


def test_suggest_never_viewed_newest_created_first(store):
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    older = entries.create_entry(store, "older")
    newer = entries.create_entry(store, "newer")
    _set_times(store, older.id, base)
    _set_times(store, newer.id, base + timedelta(hours=1))

    assert [entry.id for entry in suggestions.suggest(store)] == [newer.id, older.id]


def test_open_suggestion_moves_entry_to_back(store):
    first = entries.create_entry(store, "first")
    second = entries.create_entry(store, "second")

    top = suggestions.suggest(store, limit=1)[0]
    assert top.id == second.id

    opened = suggestions.open_suggestion(store, top.id)
    assert opened.last_viewed_at is not None
    assert [entry.id for entry in suggestions.suggest(store)] == [first.id, second.id]


def test_suggest_empty_store(store):
    assert suggestions.suggest(store) == []


def test_similar_by_tags(store):
    golang = tags.get_or_create_tag(store, "golang")
    cooking = tags.get_or_create_tag(store, "cooking")
    subject = entries.create_entry(store, "Go channels")
    related = entries.create_entry(store, "Go select statement")
    unrelated = entries.create_entry(store, "Sourdough starter")
    associations.link_entry_tag(store, subject.id, golang.id, 0.9)
    associations.link_entry_tag(store, related.id, golang.id, 0.8)
    associations.link_entry_tag(store, unrelated.id, cooking.id, 0.8)

    found = suggestions.similar_by_tags(store, subject.id)
    assert [entry.id for entry in found] == [related.id]


def test_similar_by_tags_missing_entry(store):
    with pytest.raises(NotFound):
        suggestions.similar_by_tags(store, "missing")
