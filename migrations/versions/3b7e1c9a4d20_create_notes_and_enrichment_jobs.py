"""create notes and enrichment jobs

Revision ID: 3b7e1c9a4d20
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "3b7e1c9a4d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "categories",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner", sa.Text, nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("owner", "name", name="uq_categories_owner_name"),
    )
    op.create_index("ix_categories_owner", "categories", ["owner"])

    op.create_table(
        "notes",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner", sa.Text, nullable=False),
        sa.Column("type", sa.Text, nullable=False, server_default="text"),
        sa.Column("title", sa.Text, nullable=True),
        sa.Column("content_text", sa.Text, nullable=True),
        sa.Column("ink_json", sa.JSON, nullable=True, comment="Strokes and canvas size"),
        sa.Column("ink_image_path", sa.Text, nullable=True, comment="Blob path of rendered ink"),
        sa.Column("ink_caption", sa.Text, nullable=True),
        sa.Column(
            "category_id",
            sa.UUID(as_uuid=True),
            sa.ForeignKey("categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "tags",
            postgresql.ARRAY(sa.Text),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("language_mix", sa.JSON, nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint("type IN ('text', 'ink', 'hybrid')", name="notes_type_check"),
    )
    op.create_index("ix_notes_owner_created_at", "notes", ["owner", "created_at"])
    op.create_index("ix_notes_owner_category", "notes", ["owner", "category_id"])

    op.create_table(
        "note_embeddings",
        sa.Column(
            "note_id",
            sa.UUID(as_uuid=True),
            sa.ForeignKey("notes.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("owner", sa.Text, nullable=False),
        sa.Column("embedding", postgresql.ARRAY(sa.Float), nullable=False),
        sa.Column("model", sa.Text, nullable=False, comment="Model version that produced the vector"),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_note_embeddings_owner", "note_embeddings", ["owner"])

    op.create_table(
        "knowledge_packs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner", sa.Text, nullable=False),
        sa.Column("range_start", sa.Date, nullable=False),
        sa.Column("range_end", sa.Date, nullable=False),
        sa.Column("content_md", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "owner", "range_start", "range_end", name="uq_knowledge_packs_owner_range"
        ),
    )

    op.create_table(
        "enrichment_hashes",
        sa.Column("resource_id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("kind", sa.Text, primary_key=True, comment="Enrichment kind, e.g. embedding"),
        sa.Column("content_hash", sa.Text, nullable=False, comment="SHA-256 of processed content"),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner", sa.Text, nullable=False, comment="User the job acts on behalf of"),
        sa.Column("type", sa.Text, nullable=False, comment="Job type identifier"),
        sa.Column(
            "payload",
            sa.JSON,
            nullable=False,
            server_default="{}",
            comment="Job-specific parameters",
        ),
        sa.Column(
            "status",
            sa.Text,
            nullable=False,
            server_default="queued",
            comment="Job status: queued|running|succeeded|failed",
        ),
        sa.Column(
            "attempts",
            sa.Integer,
            nullable=False,
            server_default="0",
            comment="Number of claims made",
        ),
        sa.Column(
            "max_attempts",
            sa.Integer,
            nullable=False,
            server_default="3",
            comment="Attempt ceiling",
        ),
        sa.Column(
            "run_after",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            comment="Earliest time to run job",
        ),
        # Lease
        sa.Column(
            "locked_at",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When the lease was taken",
        ),
        sa.Column("locked_by", sa.Text, nullable=True, comment="Runner holding the lease"),
        # Execution timing and outcome
        sa.Column("started_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("finished_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        sa.Column(
            "tokens_estimate",
            sa.Integer,
            nullable=True,
            comment="Rough model cost of the last run",
        ),
        sa.Column("last_error", sa.Text, nullable=True, comment="Last error message"),
        # Timestamps
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        # Constraints
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'succeeded', 'failed')",
            name="jobs_status_check",
        ),
        sa.CheckConstraint(
            "type IN ('classify_note', 'embed_note', 'caption_ink', 'generate_pack')",
            name="jobs_type_check",
        ),
    )

    # Claim scan: status = queued AND run_after <= now, ordered by run_after
    op.create_index("ix_jobs_status_run_after", "jobs", ["status", "run_after"])
    op.create_index("ix_jobs_owner_created_at", "jobs", ["owner", "created_at"])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_jobs_owner_created_at", table_name="jobs")
    op.drop_index("ix_jobs_status_run_after", table_name="jobs")
    op.drop_table("jobs")
    op.drop_table("enrichment_hashes")
    op.drop_table("knowledge_packs")
    op.drop_index("ix_note_embeddings_owner", table_name="note_embeddings")
    op.drop_table("note_embeddings")
    op.drop_index("ix_notes_owner_category", table_name="notes")
    op.drop_index("ix_notes_owner_created_at", table_name="notes")
    op.drop_table("notes")
    op.drop_index("ix_categories_owner", table_name="categories")
    op.drop_table("categories")
