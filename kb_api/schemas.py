"""
Request bodies and JSON shapes for API responses.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from kb.capture import CaptureResult
from kb.records import EntryRecord, LinkedTag, SimilarEntry, TagNode, TagRecord


class EntryCreate(BaseModel):
    content: str
    no_classify: bool = False


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def tag_payload(tag: TagRecord) -> dict:
    return {
        "id": tag.id,
        "name": tag.name,
        "parent_id": tag.parent_id,
        "created_at": _timestamp(tag.created_at),
    }


def linked_tag_payload(item: LinkedTag) -> dict:
    payload = tag_payload(item.tag)
    payload["confidence"] = item.confidence
    return payload


def entry_payload(entry: EntryRecord) -> dict:
    return {
        "id": entry.id,
        "short_id": entry.short_id,
        "content": entry.content,
        "created_at": _timestamp(entry.created_at),
        "last_viewed_at": _timestamp(entry.last_viewed_at),
        "tags": [tag_payload(tag) for tag in entry.tags],
    }


def similar_payload(match: SimilarEntry) -> dict:
    return {"entry": entry_payload(match.entry), "similarity": round(match.similarity, 6)}


def tree_payload(nodes: list[TagNode]) -> list[dict]:
    """Nested dicts for a tag forest, built without recursion."""
    roots: list[dict] = []
    stack = [(node, roots) for node in reversed(nodes)]
    while stack:
        node, siblings = stack.pop()
        converted = {"id": node.id, "name": node.name, "children": []}
        siblings.append(converted)
        stack.extend((child, converted["children"]) for child in reversed(node.children))
    return roots


def _push_nodes(stack: list, nodes: list[dict], closing: str) -> None:
    stack.append(closing)
    for index in range(len(nodes) - 1, -1, -1):
        stack.append(nodes[index])
        if index:
            stack.append(", ")


def tree_json(payload: list[dict]) -> str:
    """Encode a tree_payload forest as JSON text, one stack entry per node instead of one frame."""
    parts = ["["]
    stack: list = []
    _push_nodes(stack, payload, "]")
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            parts.append(item)
            continue
        parts.append(
            '{"id": ' + json.dumps(item["id"])
            + ', "name": ' + json.dumps(item["name"])
            + ', "children": ['
        )
        _push_nodes(stack, item["children"], "]}")
    return "".join(parts)


def capture_payload(result: CaptureResult) -> dict:
    return {
        "entry": entry_payload(result.entry),
        "tags": [
            {
                "id": applied.tag_id,
                "name": applied.name,
                "parent": applied.parent,
                "confidence": applied.confidence,
            }
            for applied in result.tags
        ],
        "similar": [similar_payload(match) for match in result.similar],
        "degraded": list(result.degraded),
    }
