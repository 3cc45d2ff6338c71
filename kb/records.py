"""
Immutable records returned by the kb services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class TagRecord:
    id: str
    name: str
    parent_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class LinkedTag:
    tag: TagRecord
    confidence: float


@dataclass(frozen=True)
class EntryRecord:
    id: str
    content: str
    created_at: datetime
    last_viewed_at: Optional[datetime] = None
    tags: tuple[TagRecord, ...] = ()

    @property
    def short_id(self) -> str:
        return self.id[:8]


@dataclass(frozen=True)
class TagNode:
    id: str
    name: str
    children: list["TagNode"] = field(default_factory=list)


@dataclass(frozen=True)
class SimilarEntry:
    entry: EntryRecord
    similarity: float


@dataclass(frozen=True)
class EmbeddingRecord:
    entry_id: str
    vector: tuple[float, ...]
    model: str
    created_at: Optional[datetime] = None

    @property
    def dimensions(self) -> int:
        return len(self.vector)
