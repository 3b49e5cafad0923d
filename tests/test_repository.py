"""Note repository and idempotency guard against Postgres."""

from datetime import UTC, date, datetime
from uuid import uuid4

from pkp.core.idempotency import EMBEDDING_KIND, IdempotencyGuard
from pkp.notes.models import Category, Note
from pkp.notes.repository import NoteRepository

OWNER = "user-1"


async def _add(session, *rows):
    session.add_all(rows)
    await session.commit()
    return rows


class TestNoteRepository:
    async def test_get_note_is_owner_scoped(self, db_session):
        (note,) = await _add(db_session, Note(owner=OWNER, type="text", content_text="x"))
        repo = NoteRepository(db_session)

        assert (await repo.get_note(OWNER, note.id)).id == note.id
        assert await repo.get_note("someone-else", note.id) is None

    async def test_categories(self, db_session):
        work = Category(owner=OWNER, name="Work")
        await _add(db_session, work, Category(owner=OWNER, name="Home"))
        await _add(
            db_session,
            Note(owner=OWNER, type="text", content_text="standup", category_id=work.id),
        )
        repo = NoteRepository(db_session)

        assert set(await repo.list_category_names(OWNER)) == {"Work", "Home"}
        assert await repo.recent_category_names(OWNER) == ["Work"]
        assert (await repo.find_category(OWNER, "Home")).name == "Home"
        assert await repo.find_category("someone-else", "Home") is None

    async def test_enrichment_writes(self, db_session):
        category = Category(owner=OWNER, name="Travel")
        note = Note(owner=OWNER, type="ink", ink_json={"strokes": []})
        await _add(db_session, category, note)
        repo = NoteRepository(db_session)

        await repo.set_caption(note.id, "Train map")
        await repo.set_language_mix(note.id, {"en": 1.0})
        await repo.assign_category(note.id, category.id)
        await repo.commit()
        await db_session.refresh(note)

        assert note.ink_caption == "Train map"
        assert note.language_mix == {"en": 1.0}
        assert note.category_id == category.id

    async def test_upsert_embedding_replaces_vector(self, db_session):
        (note,) = await _add(db_session, Note(owner=OWNER, type="text", content_text="x"))
        repo = NoteRepository(db_session)

        await repo.upsert_embedding(OWNER, note.id, [0.1, 0.2], "model-a")
        await repo.upsert_embedding(OWNER, note.id, [0.3, 0.4], "model-b")
        await repo.commit()

        embedding = await repo.get_embedding(note.id)
        assert embedding.embedding == [0.3, 0.4]
        assert embedding.model == "model-b"

    async def test_notes_in_range_is_inclusive_by_day(self, db_session):
        await _add(
            db_session,
            Note(owner=OWNER, type="text", title="before",
                 created_at=datetime(2026, 10, 11, 23, 59, tzinfo=UTC)),
            Note(owner=OWNER, type="text", title="first",
                 created_at=datetime(2026, 10, 12, 0, 0, tzinfo=UTC)),
            Note(owner=OWNER, type="text", title="last",
                 created_at=datetime(2026, 10, 18, 23, 59, tzinfo=UTC)),
            Note(owner=OWNER, type="text", title="after",
                 created_at=datetime(2026, 10, 19, 0, 0, tzinfo=UTC)),
        )

        notes = await NoteRepository(db_session).notes_in_range(
            OWNER, date(2026, 10, 12), date(2026, 10, 18)
        )

        assert [n.title for n in notes] == ["first", "last"]

    async def test_upsert_pack(self, db_session):
        repo = NoteRepository(db_session)
        start, end = date(2026, 10, 12), date(2026, 10, 18)

        await repo.upsert_pack(OWNER, start, end, "# v1")
        await repo.upsert_pack(OWNER, start, end, "# v2")
        await repo.commit()

        assert (await repo.get_pack(OWNER, start, end)).content_md == "# v2"


class TestIdempotencyGuard:
    async def test_record_then_skip(self, db_session):
        guard = IdempotencyGuard(db_session)
        resource_id = uuid4()

        assert not await guard.should_skip(resource_id, EMBEDDING_KIND, "text")

        await guard.record(resource_id, EMBEDDING_KIND, "text")
        await db_session.commit()

        assert await guard.should_skip(resource_id, EMBEDDING_KIND, "text")
        assert not await guard.should_skip(resource_id, EMBEDDING_KIND, "edited text")

    async def test_record_overwrites(self, db_session):
        guard = IdempotencyGuard(db_session)
        resource_id = uuid4()

        await guard.record(resource_id, EMBEDDING_KIND, "v1")
        await guard.record(resource_id, EMBEDDING_KIND, "v2")
        await db_session.commit()

        assert await guard.should_skip(resource_id, EMBEDDING_KIND, "v2")

    async def test_uncommitted_record_is_discarded_on_rollback(self, db_session):
        guard = IdempotencyGuard(db_session)
        resource_id = uuid4()

        await guard.record(resource_id, EMBEDDING_KIND, "text")
        await db_session.rollback()

        assert await guard.stored_hash(resource_id, EMBEDDING_KIND) is None
