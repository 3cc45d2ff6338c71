"""
Tag hierarchy services: deduplicated, parent-linked tag catalogue.

Tags are created lazily by get_or_create_tag and never deleted here. The
parent relation is meant to form a forest; readers guard against cycles in
stored data, and set_tag_parent refuses assignments that would create one.
"""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Optional, Sequence

from kb.config import MAX_TAG_NAME_LENGTH
from kb.errors import InvalidInput, NotFound
from kb.models import Tag, new_id, utcnow
from kb.records import TagNode, TagRecord
from kb.services.shared import (
    _validate_identifier,
    _validate_required_text,
    dialect_insert,
    service_call,
    tag_record,
    upsert_call,
)

_SEPARATORS = re.compile(r"[\s_]+")
_REPEATED_HYPHENS = re.compile(r"-{2,}")


def normalize_tag_name(name: str) -> str:
    """Boundary normalization: lowercase, hyphen-separated ("Machine Learning" -> "machine-learning")."""
    value = _SEPARATORS.sub("-", name.strip().lower())
    return _REPEATED_HYPHENS.sub("-", value).strip("-")


def _descendant_ids(db, tag_id: str) -> list[str]:
    """Return tag_id followed by every transitive child, breadth first."""
    ordered = [tag_id]
    seen = {tag_id}
    frontier = [tag_id]
    while frontier:
        rows = db.query(Tag.id).filter(Tag.parent_id.in_(frontier)).order_by(Tag.name).all()
        frontier = []
        for (child_id,) in rows:
            if child_id in seen:
                continue
            seen.add(child_id)
            ordered.append(child_id)
            frontier.append(child_id)
    return ordered


@upsert_call
def get_or_create_tag(store, name: str, parent_id: Optional[str] = None) -> TagRecord:
    """
    Find a tag by exact name or create it under the given parent.

    Concurrent callers proposing the same name converge on one row: the
    insert is ON CONFLICT DO NOTHING and the row is re-read afterwards.
    An existing tag is returned as stored; its parent is not rewritten.
    """
    _validate_required_text(name, "name", MAX_TAG_NAME_LENGTH)
    if parent_id is not None:
        _validate_identifier(parent_id, "parent_id")
    name_clean = name.strip()

    db = store.SessionLocal()
    try:
        existing = db.query(Tag).filter(Tag.name == name_clean).first()
        if existing:
            return tag_record(existing)

        if parent_id is not None and db.get(Tag, parent_id) is None:
            raise NotFound(f"Parent tag not found: {parent_id}", kind="tag", ref=parent_id)

        insert = dialect_insert(db)
        stmt = (
            insert(Tag.__table__)
            .values(id=new_id(), name=name_clean, parent_id=parent_id, created_at=utcnow())
            .on_conflict_do_nothing(index_elements=["name"])
        )
        db.execute(stmt)
        db.commit()

        tag = db.query(Tag).filter(Tag.name == name_clean).one()
        return tag_record(tag)
    finally:
        db.close()


@service_call
def get_tag(store, tag_id: str) -> TagRecord:
    _validate_identifier(tag_id, "tag_id")
    db = store.SessionLocal()
    try:
        tag = db.get(Tag, tag_id)
        if tag is None:
            raise NotFound(f"Tag not found: {tag_id}", kind="tag", ref=tag_id)
        return tag_record(tag)
    finally:
        db.close()


@service_call
def get_tag_by_name(store, name: str) -> TagRecord:
    _validate_required_text(name, "name", MAX_TAG_NAME_LENGTH)
    db = store.SessionLocal()
    try:
        tag = db.query(Tag).filter(Tag.name == name.strip()).first()
        if tag is None:
            raise NotFound(f"Tag not found: {name}", kind="tag", ref=name)
        return tag_record(tag)
    finally:
        db.close()


@service_call
def list_tags(store) -> list[TagRecord]:
    db = store.SessionLocal()
    try:
        return [tag_record(tag) for tag in db.query(Tag).order_by(Tag.name, Tag.id).all()]
    finally:
        db.close()


@service_call
def descendant_tag_ids(store, tag_id: str) -> list[str]:
    _validate_identifier(tag_id, "tag_id")
    db = store.SessionLocal()
    try:
        if db.get(Tag, tag_id) is None:
            raise NotFound(f"Tag not found: {tag_id}", kind="tag", ref=tag_id)
        return _descendant_ids(db, tag_id)
    finally:
        db.close()


@service_call
def set_tag_parent(store, tag_id: str, parent_id: Optional[str]) -> TagRecord:
    """Move a tag under another parent (or to the root with None), refusing cycles."""
    _validate_identifier(tag_id, "tag_id")
    if parent_id is not None:
        _validate_identifier(parent_id, "parent_id")

    db = store.SessionLocal()
    try:
        tag = db.get(Tag, tag_id)
        if tag is None:
            raise NotFound(f"Tag not found: {tag_id}", kind="tag", ref=tag_id)
        if parent_id is not None:
            if parent_id == tag_id:
                raise InvalidInput("a tag cannot be its own parent", field="parent_id", error_type="cycle")
            if db.get(Tag, parent_id) is None:
                raise NotFound(f"Parent tag not found: {parent_id}", kind="tag", ref=parent_id)
            if parent_id in _descendant_ids(db, tag_id):
                raise InvalidInput(
                    "parent_id is a descendant of the tag",
                    field="parent_id",
                    error_type="cycle",
                )
        tag.parent_id = parent_id
        db.commit()
        return tag_record(tag)
    finally:
        db.close()


def build_tag_tree(tags: Sequence[TagRecord]) -> list[TagNode]:
    """
    Nest a flat tag list into a forest of TagNode.

    Roots are tags without a parent (or whose parent is missing from the
    input). Children keep the input order. The traversal is iterative and
    tracks visited ids, so cyclic parent chains terminate; tags only
    reachable through a cycle are emitted as extra roots.
    """
    by_id: dict[str, TagRecord] = {}
    order: list[str] = []
    for tag in tags:
        if tag.id not in by_id:
            by_id[tag.id] = tag
            order.append(tag.id)

    children: dict[str, list[str]] = defaultdict(list)
    root_ids: list[str] = []
    for tag_id in order:
        parent_id = by_id[tag_id].parent_id
        if parent_id is None or parent_id == tag_id or parent_id not in by_id:
            root_ids.append(tag_id)
        else:
            children[parent_id].append(tag_id)

    visited: set[str] = set()

    def materialize(root_id: str) -> TagNode:
        root = TagNode(id=root_id, name=by_id[root_id].name)
        visited.add(root_id)
        stack = [root]
        while stack:
            node = stack.pop()
            for child_id in children.get(node.id, ()):
                if child_id in visited:
                    continue
                visited.add(child_id)
                child = TagNode(id=child_id, name=by_id[child_id].name)
                node.children.append(child)
                stack.append(child)
        return root

    forest = [materialize(root_id) for root_id in root_ids]
    for tag_id in order:
        if tag_id not in visited:
            forest.append(materialize(tag_id))
    return forest


def tag_tree(store) -> list[TagNode]:
    return build_tag_tree(list_tags(store))
