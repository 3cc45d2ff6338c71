"""
Tag endpoints.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Response

from kb.services import entries, tags
from kb_api.deps import get_store
from kb_api.schemas import entry_payload, tag_payload, tree_json, tree_payload


router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("")
def list_tags(store=Depends(get_store)):
    """All tags, nested as a forest and as a flat list."""
    flat = tags.list_tags(store)
    # Deep parent chains must never reach the recursive JSON encoders.
    body = '{"tags": %s, "flat": %s}' % (
        tree_json(tree_payload(tags.build_tag_tree(flat))),
        json.dumps([tag_payload(tag) for tag in flat]),
    )
    return Response(content=body, media_type="application/json")


@router.get("/{tag_id}/entries")
def tag_entries(tag_id: str, include_descendants: bool = True, store=Depends(get_store)):
    tag = tags.get_tag(store, tag_id)
    rows = entries.list_entries_by_tag(store, tag.id, include_descendants=include_descendants)
    return {
        "tag": tag_payload(tag),
        "include_descendants": include_descendants,
        "entries": [entry_payload(entry) for entry in rows],
    }
