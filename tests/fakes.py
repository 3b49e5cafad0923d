"""In-memory stand-ins for the collaborators executors talk to."""

import asyncio
from datetime import UTC, date, datetime
from uuid import UUID, uuid4

from pkp.core.exceptions import NotFoundError, ProviderError
from pkp.core.idempotency import content_hash
from pkp.enrichment.providers import ClassificationResult
from pkp.jobs.executors import JobContext
from pkp.jobs.models import JobStatus, JobType
from pkp.jobs.schemas import JobEnqueueResponse, parse_payload
from pkp.notes.models import Category, KnowledgePack, Note

OWNER = "user-1"


def make_note(owner: str = OWNER, **fields) -> Note:
    fields.setdefault("type", "text")
    fields.setdefault("created_at", datetime(2026, 10, 12, 9, 0, tzinfo=UTC))
    return Note(id=fields.pop("id", uuid4()), owner=owner, **fields)


def make_ink(strokes: int = 3) -> dict:
    return {
        "canvas_w": 800,
        "canvas_h": 600,
        "strokes": [{"points": [[0, 0], [1, 1]]} for _ in range(strokes)],
    }


class FakeNoteRepository:
    """Dict-backed repository; writes are visible only after commit()."""

    def __init__(self, notes=(), categories=()):
        self.notes: dict[UUID, Note] = {note.id: note for note in notes}
        self.categories: list[Category] = list(categories)
        self.embeddings: dict[UUID, dict] = {}
        self.packs: dict[tuple[str, date, date], KnowledgePack] = {}
        self.recent: list[str] = []
        self.commits = 0
        self._pending: list = []

    async def get_note(self, owner: str, note_id: UUID) -> Note | None:
        note = self.notes.get(note_id)
        if note is None or note.owner != owner:
            return None
        return note

    async def list_category_names(self, owner: str) -> list[str]:
        return [c.name for c in self.categories if c.owner == owner]

    async def recent_category_names(self, owner: str) -> list[str]:
        return list(self.recent)

    async def find_category(self, owner: str, name: str) -> Category | None:
        for category in self.categories:
            if category.owner == owner and category.name == name:
                return category
        return None

    async def set_language_mix(self, note_id, language_mix):
        self._pending.append(lambda: setattr(self.notes[note_id], "language_mix", language_mix))

    async def assign_category(self, note_id, category_id):
        self._pending.append(lambda: setattr(self.notes[note_id], "category_id", category_id))

    async def set_caption(self, note_id, caption):
        self._pending.append(lambda: setattr(self.notes[note_id], "ink_caption", caption))

    async def upsert_embedding(self, owner, note_id, embedding, model):
        row = {"owner": owner, "embedding": embedding, "model": model}
        self._pending.append(lambda: self.embeddings.__setitem__(note_id, row))

    async def get_pack(self, owner, range_start, range_end):
        return self.packs.get((owner, range_start, range_end))

    async def notes_in_range(self, owner, range_start, range_end):
        return sorted(
            (
                n
                for n in self.notes.values()
                if n.owner == owner and range_start <= n.created_at.date() <= range_end
            ),
            key=lambda n: n.created_at,
        )

    async def upsert_pack(self, owner, range_start, range_end, content_md):
        pack = KnowledgePack(
            owner=owner, range_start=range_start, range_end=range_end, content_md=content_md
        )
        self._pending.append(
            lambda: self.packs.__setitem__((owner, range_start, range_end), pack)
        )

    async def commit(self) -> None:
        for apply in self._pending:
            apply()
        self._pending.clear()
        self.commits += 1


class FakeGuard:
    """Content hash store with the same compare/record contract."""

    def __init__(self):
        self.hashes: dict[tuple[UUID, str], str] = {}

    async def should_skip(self, resource_id, kind, text) -> bool:
        return self.hashes.get((resource_id, kind)) == content_hash(text)

    async def record(self, resource_id, kind, text) -> None:
        self.hashes[(resource_id, kind)] = content_hash(text)


class FakeQueue:
    """Records enqueues; dedups against its own queued entries."""

    def __init__(self):
        self.jobs: list[dict] = []

    async def enqueue_unique(self, owner, job_type, payload, run_after=None, commit=True):
        job_type = JobType(job_type)
        data = parse_payload(job_type, payload).model_dump(mode="json")
        for job in self.jobs:
            if job["owner"] == owner and job["type"] == job_type.value and job["payload"] == data:
                return JobEnqueueResponse(
                    job_id=job["id"], status=JobStatus.QUEUED.value, deduplicated=True
                )
        job = {"id": uuid4(), "owner": owner, "type": job_type.value, "payload": data}
        self.jobs.append(job)
        return JobEnqueueResponse(job_id=job["id"], status=JobStatus.QUEUED.value)


class FakeProvider:
    """Counts calls and returns canned results; can be told to fail."""

    def __init__(self, classification=None, embedding=None, caption="A sketch of a cat"):
        self.classification = classification or ClassificationResult()
        self.embedding = embedding or [0.1, 0.2, 0.3]
        self.caption_text = caption
        self.fail_caption = False
        self.caption_delay = 0.0
        self.fail_embed = False
        self.calls: dict[str, int] = {"classify": 0, "embed": 0, "caption": 0, "summarize": 0}
        self.summarized: list = []

    async def classify(self, text, existing_categories, recent_categories):
        self.calls["classify"] += 1
        return self.classification

    async def embed(self, text):
        self.calls["embed"] += 1
        if self.fail_embed:
            raise ProviderError("embedding service unavailable")
        return self.embedding

    async def caption(self, image):
        self.calls["caption"] += 1
        if self.caption_delay:
            await asyncio.sleep(self.caption_delay)
        if self.fail_caption:
            raise ProviderError("vision model unavailable")
        return self.caption_text

    async def summarize(self, notes, range_start, range_end):
        self.calls["summarize"] += 1
        self.summarized = list(notes)
        return f"# Pack {range_start.isoformat()}\n\n" + "\n".join(
            f"- {n.title}" for n in notes
        )

    def get_model_version(self, purpose):
        return f"fake-{purpose}"


class FakeBlobStore:
    def __init__(self, blobs=None):
        self.blobs: dict[str, bytes] = dict(blobs or {})

    async def download(self, path: str) -> bytes:
        if path not in self.blobs:
            raise NotFoundError(f"Blob not found: {path}")
        return self.blobs[path]


def make_context(notes=None, queue=None, guard=None, owner: str = OWNER) -> JobContext:
    return JobContext(
        job_id=uuid4(),
        owner=owner,
        notes=notes or FakeNoteRepository(),
        queue=queue or FakeQueue(),
        guard=guard or FakeGuard(),
    )
