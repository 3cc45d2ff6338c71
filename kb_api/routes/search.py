"""
Search and suggestion endpoints.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from kb.services import entries, suggestions
from kb_api.deps import get_store
from kb_api.schemas import entry_payload


router = APIRouter()


@router.get("/search")
def search(q: Optional[str] = None, store=Depends(get_store)):
    """Case-insensitive substring search; a missing or blank q is a 400."""
    rows = entries.search_entries(store, q or "")
    return {"query": q, "entries": [entry_payload(entry) for entry in rows]}


@router.get("/suggestions")
def suggest(limit: Optional[int] = None, store=Depends(get_store)):
    rows = suggestions.suggest(store, limit=limit)
    return {"entries": [entry_payload(entry) for entry in rows]}
