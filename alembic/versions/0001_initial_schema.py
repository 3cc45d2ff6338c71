"""Initial knowledge base schema.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_viewed_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_entries_created_at", "entries", ["created_at"])
    op.create_index("ix_entries_last_viewed_at", "entries", ["last_viewed_at"])

    op.create_table(
        "tags",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column(
            "parent_id",
            sa.String(length=36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_tags_parent_id", "tags", ["parent_id"])

    op.create_table(
        "entry_tags",
        sa.Column(
            "entry_id",
            sa.String(length=36),
            sa.ForeignKey("entries.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "tag_id",
            sa.String(length=36),
            sa.ForeignKey("tags.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("confidence", sa.Float(), nullable=False, server_default="1.0"),
        sa.CheckConstraint(
            "confidence >= 0.0 AND confidence <= 1.0",
            name="ck_entry_tags_confidence",
        ),
    )
    op.create_index("ix_entry_tags_entry_id", "entry_tags", ["entry_id"])
    op.create_index("ix_entry_tags_tag_id", "entry_tags", ["tag_id"])

    op.create_table(
        "embeddings",
        sa.Column(
            "entry_id",
            sa.String(length=36),
            sa.ForeignKey("entries.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("vector", sa.LargeBinary(), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("embeddings")
    op.drop_index("ix_entry_tags_tag_id", table_name="entry_tags")
    op.drop_index("ix_entry_tags_entry_id", table_name="entry_tags")
    op.drop_table("entry_tags")
    op.drop_index("ix_tags_parent_id", table_name="tags")
    op.drop_table("tags")
    op.drop_index("ix_entries_last_viewed_at", table_name="entries")
    op.drop_index("ix_entries_created_at", table_name="entries")
    op.drop_table("entries")
