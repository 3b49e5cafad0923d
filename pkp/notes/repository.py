"""
Owner-scoped data access for notes and their enrichment outputs.

Write methods stage changes on the session; callers decide when to commit
so a remote result and its bookkeeping land in one transaction.
"""

from datetime import UTC, date, datetime, time, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from pkp.notes.models import Category, KnowledgePack, Note, NoteEmbedding

EXISTING_CATEGORY_LIMIT = 50
RECENT_CATEGORY_LIMIT = 10
RECENT_NOTE_WINDOW = 20


class NoteRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_note(self, owner: str, note_id: UUID) -> Note | None:
        result = await self.session.execute(
            select(Note).where(Note.id == note_id, Note.owner == owner)
        )
        return result.scalar_one_or_none()

    async def list_category_names(
        self, owner: str, limit: int = EXISTING_CATEGORY_LIMIT
    ) -> list[str]:
        result = await self.session.execute(
            select(Category.name)
            .where(Category.owner == owner)
            .order_by(Category.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def recent_category_names(
        self,
        owner: str,
        note_window: int = RECENT_NOTE_WINDOW,
        limit: int = RECENT_CATEGORY_LIMIT,
    ) -> list[str]:
        """Names of categories used by the owner's most recent categorized notes."""
        recent_ids = (
            select(Note.category_id)
            .where(Note.owner == owner, Note.category_id.is_not(None))
            .order_by(Note.created_at.desc())
            .limit(note_window)
            .subquery()
        )
        result = await self.session.execute(
            select(Category.name)
            .where(Category.id.in_(select(recent_ids.c.category_id)))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_category(self, owner: str, name: str) -> Category | None:
        result = await self.session.execute(
            select(Category).where(Category.owner == owner, Category.name == name)
        )
        return result.scalar_one_or_none()

    async def set_language_mix(self, note_id: UUID, language_mix: dict[str, float]) -> None:
        await self.session.execute(
            update(Note).where(Note.id == note_id).values(language_mix=language_mix)
        )

    async def assign_category(self, note_id: UUID, category_id: UUID) -> None:
        await self.session.execute(
            update(Note).where(Note.id == note_id).values(category_id=category_id)
        )

    async def set_caption(self, note_id: UUID, caption: str) -> None:
        await self.session.execute(
            update(Note).where(Note.id == note_id).values(ink_caption=caption)
        )

    async def upsert_embedding(
        self, owner: str, note_id: UUID, embedding: list[float], model: str
    ) -> None:
        stmt = insert(NoteEmbedding).values(
            note_id=note_id, owner=owner, embedding=embedding, model=model
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[NoteEmbedding.note_id],
            set_={
                "embedding": stmt.excluded.embedding,
                "model": stmt.excluded.model,
                "updated_at": datetime.now(UTC),
            },
        )
        await self.session.execute(stmt)

    async def get_embedding(self, note_id: UUID) -> NoteEmbedding | None:
        result = await self.session.execute(
            select(NoteEmbedding).where(NoteEmbedding.note_id == note_id)
        )
        return result.scalar_one_or_none()

    async def get_pack(
        self, owner: str, range_start: date, range_end: date
    ) -> KnowledgePack | None:
        result = await self.session.execute(
            select(KnowledgePack).where(
                KnowledgePack.owner == owner,
                KnowledgePack.range_start == range_start,
                KnowledgePack.range_end == range_end,
            )
        )
        return result.scalar_one_or_none()

    async def notes_in_range(
        self, owner: str, range_start: date, range_end: date
    ) -> list[Note]:
        """Notes created on any day from range_start through range_end (UTC), oldest first."""
        start = datetime.combine(range_start, time.min, tzinfo=UTC)
        end = datetime.combine(range_end + timedelta(days=1), time.min, tzinfo=UTC)
        result = await self.session.execute(
            select(Note)
            .where(Note.owner == owner, Note.created_at >= start, Note.created_at < end)
            .order_by(Note.created_at)
        )
        return list(result.scalars().all())

    async def upsert_pack(
        self, owner: str, range_start: date, range_end: date, content_md: str
    ) -> None:
        stmt = insert(KnowledgePack).values(
            owner=owner,
            range_start=range_start,
            range_end=range_end,
            content_md=content_md,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_knowledge_packs_owner_range",
            set_={"content_md": stmt.excluded.content_md, "updated_at": datetime.now(UTC)},
        )
        await self.session.execute(stmt)

    async def commit(self) -> None:
        await self.session.commit()
