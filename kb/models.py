"""
kb Database Models
SQLite (default) or PostgreSQL schema
"""

from datetime import datetime, timezone
import uuid

from sqlalchemy import (
    Column, String, Text, Float, DateTime, LargeBinary, ForeignKey,
    CheckConstraint, Index,
)
from sqlalchemy.orm import relationship, declarative_base
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """DateTime that always reads back as timezone-aware UTC.

    SQLite stores no offset, so values loaded from it come back naive.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


Base = declarative_base()


# =============================================================================
# Entries
# =============================================================================

class Entry(Base):
    __tablename__ = "entries"

    id = Column(String(36), primary_key=True, default=new_id)
    content = Column(Text, nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    last_viewed_at = Column(UTCDateTime())

    # Relationships
    tag_links = relationship(
        "EntryTag",
        back_populates="entry",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    embedding = relationship(
        "Embedding",
        back_populates="entry",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_entries_created_at", "created_at"),
        Index("ix_entries_last_viewed_at", "last_viewed_at"),
    )


# =============================================================================
# Tags (emergent from classification)
# =============================================================================

class Tag(Base):
    __tablename__ = "tags"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, unique=True)
    parent_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"))
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    entry_links = relationship(
        "EntryTag",
        back_populates="tag",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("ix_tags_parent_id", "parent_id"),
    )


# =============================================================================
# Entry-Tag associations (many-to-many, weighted)
# =============================================================================

class EntryTag(Base):
    __tablename__ = "entry_tags"

    entry_id = Column(String(36), ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(String(36), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True)
    confidence = Column(Float, nullable=False, default=1.0)

    entry = relationship("Entry", back_populates="tag_links")
    tag = relationship("Tag", back_populates="entry_links")

    __table_args__ = (
        CheckConstraint("confidence >= 0.0 AND confidence <= 1.0", name="ck_entry_tags_confidence"),
        Index("ix_entry_tags_entry_id", "entry_id"),
        Index("ix_entry_tags_tag_id", "tag_id"),
    )


# =============================================================================
# Embeddings (one per entry)
# =============================================================================

class Embedding(Base):
    __tablename__ = "embeddings"

    entry_id = Column(String(36), ForeignKey("entries.id", ondelete="CASCADE"), primary_key=True)
    vector = Column(LargeBinary, nullable=False)  # little-endian float64 components
    model = Column(String(100), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    entry = relationship("Entry", back_populates="embedding")
