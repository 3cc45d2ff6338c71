"""
Entry endpoints: capture, browse, view and delete.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response

from kb.capture import capture_entry
from kb.services import associations, embeddings, entries, suggestions
from kb_api.deps import get_classifier_dep, get_embedder_dep, get_store
from kb_api.schemas import (
    EntryCreate,
    capture_payload,
    entry_payload,
    linked_tag_payload,
    similar_payload,
)


router = APIRouter(prefix="/entries", tags=["entries"])


@router.post("", status_code=201)
def create_entry(
    body: EntryCreate,
    store=Depends(get_store),
    classifier=Depends(get_classifier_dep),
    embedder=Depends(get_embedder_dep),
):
    """Capture a new entry, then tag and embed it."""
    result = capture_entry(
        store,
        body.content,
        classifier=classifier,
        embedder=embedder,
        classify=not body.no_classify,
    )
    return capture_payload(result)


@router.get("")
def list_entries(limit: Optional[int] = None, offset: int = 0, store=Depends(get_store)):
    rows = entries.list_entries(store, limit=limit, offset=offset)
    return {
        "entries": [entry_payload(entry) for entry in rows],
        "limit": limit,
        "offset": offset,
    }


@router.get("/{entry_id}")
def get_entry(entry_id: str, store=Depends(get_store)):
    """Fetch an entry by id or by a unique prefix of a recent entry's id."""
    full_id = entries.resolve_entry_prefix(store, entry_id)
    payload = entry_payload(entries.get_entry(store, full_id))
    payload["tags"] = [linked_tag_payload(item) for item in associations.linked_tags_of(store, full_id)]
    return payload


@router.delete("/{entry_id}", status_code=204)
def delete_entry(entry_id: str, store=Depends(get_store)):
    entries.delete_entry(store, entry_id)
    return Response(status_code=204)


@router.post("/{entry_id}/view")
def view_entry(entry_id: str, store=Depends(get_store)):
    full_id = entries.resolve_entry_prefix(store, entry_id)
    return entry_payload(suggestions.open_suggestion(store, full_id))


@router.get("/{entry_id}/similar")
def similar_entries(entry_id: str, limit: Optional[int] = None, store=Depends(get_store)):
    full_id = entries.resolve_entry_prefix(store, entry_id)
    if limit is None:
        matches = embeddings.find_similar_to_entry(store, full_id)
    else:
        matches = embeddings.find_similar_to_entry(store, full_id, limit=limit)
    return {"entry_id": full_id, "similar": [similar_payload(match) for match in matches]}


@router.get("/{entry_id}/related")
def related_entries(entry_id: str, limit: Optional[int] = None, store=Depends(get_store)):
    full_id = entries.resolve_entry_prefix(store, entry_id)
    rows = suggestions.similar_by_tags(store, full_id, limit=limit)
    return {"entry_id": full_id, "entries": [entry_payload(entry) for entry in rows]}
