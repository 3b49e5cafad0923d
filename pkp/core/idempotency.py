"""
Content-hash guard that lets enrichment handlers skip redundant remote calls.
"""

import hashlib
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import Text, select
from sqlalchemy.dialects.postgresql import TIMESTAMP
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from pkp.infra.database import Base

EMBEDDING_KIND = "embedding"


class EnrichmentHash(Base):
    """Hash of the content most recently processed by one enrichment kind."""

    __tablename__ = "enrichment_hashes"

    resource_id: Mapped[UUID] = mapped_column(PG_UUID, primary_key=True)
    kind: Mapped[str] = mapped_column(Text, primary_key=True)
    content_hash: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default="now()",
    )


def content_hash(text: str) -> str:
    """SHA-256 hex digest of text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class IdempotencyGuard:
    """Compare and record content hashes per (resource, kind)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def stored_hash(self, resource_id: UUID, kind: str) -> str | None:
        result = await self.session.execute(
            select(EnrichmentHash.content_hash).where(
                EnrichmentHash.resource_id == resource_id,
                EnrichmentHash.kind == kind,
            )
        )
        return result.scalar_one_or_none()

    async def should_skip(self, resource_id: UUID, kind: str, text: str) -> bool:
        """True when text hashes to the value recorded for this resource and kind."""
        return await self.stored_hash(resource_id, kind) == content_hash(text)

    async def record(self, resource_id: UUID, kind: str, text: str) -> None:
        """
        Upsert the hash for text without committing.

        Call only after the remote result is written in the same
        transaction, so the hash never claims work that did not persist.
        """
        digest = content_hash(text)
        stmt = insert(EnrichmentHash).values(
            resource_id=resource_id,
            kind=kind,
            content_hash=digest,
            updated_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[EnrichmentHash.resource_id, EnrichmentHash.kind],
            set_={"content_hash": digest, "updated_at": stmt.excluded.updated_at},
        )
        await self.session.execute(stmt)
