"""
Resource tables read and written by enrichment jobs.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Index,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from pkp.infra.database import Base


class TimestampMixin:
    """Mixin for timestamp fields."""

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )


class Category(Base):
    """User-defined note category. Only created by explicit user action."""

    __tablename__ = "categories"

    id: Mapped[UUID] = mapped_column(PG_UUID, primary_key=True, default=uuid4)
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("owner", "name", name="uq_categories_owner_name"),
        Index("ix_categories_owner", "owner"),
    )


class Note(Base, TimestampMixin):
    """A captured note: typed text, handwritten ink, or both."""

    __tablename__ = "notes"

    id: Mapped[UUID] = mapped_column(PG_UUID, primary_key=True, default=uuid4)
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="text")
    title: Mapped[str | None] = mapped_column(Text)
    content_text: Mapped[str | None] = mapped_column(Text)

    # Ink: {"canvas_w", "canvas_h", "strokes": [...]}
    ink_json: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    ink_image_path: Mapped[str | None] = mapped_column(Text)
    ink_caption: Mapped[str | None] = mapped_column(Text)

    # Enrichment outputs
    category_id: Mapped[UUID | None] = mapped_column(
        PG_UUID, ForeignKey("categories.id", ondelete="SET NULL")
    )
    tags: Mapped[list[str]] = mapped_column(
        ARRAY(Text), nullable=False, default=list, server_default="{}"
    )
    language_mix: Mapped[dict[str, float] | None] = mapped_column(JSON)

    __table_args__ = (
        CheckConstraint("type IN ('text', 'ink', 'hybrid')", name="notes_type_check"),
        Index("ix_notes_owner_created_at", "owner", "created_at"),
        Index("ix_notes_owner_category", "owner", "category_id"),
    )

    def enrichment_text(self) -> str:
        """Title, body and ink caption joined the way every enrichment reads them."""
        parts = [self.title, self.content_text, self.ink_caption]
        return "\n\n".join(part for part in parts if part)

    def stroke_count(self) -> int:
        strokes = (self.ink_json or {}).get("strokes") or []
        return len(strokes)


class NoteEmbedding(Base, TimestampMixin):
    """One embedding vector per note."""

    __tablename__ = "note_embeddings"

    note_id: Mapped[UUID] = mapped_column(
        PG_UUID, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True
    )
    owner: Mapped[str] = mapped_column(Text, nullable=False)

    # Stored as ARRAY(Float); fixed length set by embedding_dimensions
    embedding: Mapped[list[float]] = mapped_column(ARRAY(Float), nullable=False)
    model: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (Index("ix_note_embeddings_owner", "owner"),)


class KnowledgePack(Base, TimestampMixin):
    """Markdown digest of a user's notes over a date range."""

    __tablename__ = "knowledge_packs"

    id: Mapped[UUID] = mapped_column(PG_UUID, primary_key=True, default=uuid4)
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    range_start: Mapped[date] = mapped_column(Date, nullable=False)
    range_end: Mapped[date] = mapped_column(Date, nullable=False)
    content_md: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "owner", "range_start", "range_end", name="uq_knowledge_packs_owner_range"
        ),
    )
