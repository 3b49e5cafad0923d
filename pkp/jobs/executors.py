"""
Job executors for note enrichment.

One executor per job type, registered in the job registry by type name.
Executors raise on failure; the runner turns any exception into a retry or
a terminal failure. Every executor is safe to run more than once for the
same job.
"""

import asyncio
import math
from dataclasses import dataclass
from uuid import UUID

from pkp.config.logging import get_logger
from pkp.config.settings import Settings
from pkp.core.exceptions import NotFoundError
from pkp.core.idempotency import EMBEDDING_KIND, IdempotencyGuard
from pkp.core.registries import BlobStore, EnrichmentProvider
from pkp.enrichment.providers import DEFAULT_CAPTION
from pkp.jobs.models import JobType
from pkp.jobs.schemas import ExecutionResult, GeneratePackPayload, NotePayload, PackMode
from pkp.jobs.store import JobStore
from pkp.notes.repository import NoteRepository

logger = get_logger(__name__)

VISION_CAPTION_TOKENS = 500
FALLBACK_CAPTION_TOKENS = 100


@dataclass
class JobContext:
    """Everything an executor may touch, scoped to one job and its owner."""

    job_id: UUID
    owner: str
    notes: NoteRepository
    queue: JobStore
    guard: IdempotencyGuard


def estimate_tokens(char_count: int) -> int:
    """Rough model cost: four characters per token."""
    return math.ceil(char_count / 4)


async def _load_note(ctx: JobContext, note_id: UUID):
    note = await ctx.notes.get_note(ctx.owner, note_id)
    if note is None:
        raise NotFoundError("Note not found", {"note_id": str(note_id), "owner": ctx.owner})
    return note


class ClassifyNoteExecutor:
    """
    Propose a category for a note and apply it when confident.

    Payload: {"note_id": "uuid"}

    Language mix is always stored. A category is applied only when the
    model is confident and the owner already has a category of that name;
    categories are never created here.
    """

    follow_ups: tuple[str, ...] = ()

    def __init__(self, settings: Settings, provider: EnrichmentProvider):
        self.settings = settings
        self.provider = provider

    async def execute(self, ctx: JobContext, payload: NotePayload) -> ExecutionResult:
        note = await _load_note(ctx, payload.note_id)

        text = note.enrichment_text()
        if not text.strip():
            return ExecutionResult(tokens_estimate=0, detail="empty_note")

        existing = await ctx.notes.list_category_names(ctx.owner)
        recent = await ctx.notes.recent_category_names(ctx.owner)

        result = await self.provider.classify(text, existing, recent)

        await ctx.notes.set_language_mix(note.id, result.language_mix)

        applied = None
        if result.confidence >= self.settings.classify_confidence_threshold:
            category = await ctx.notes.find_category(ctx.owner, result.proposed_category_name)
            if category is not None:
                await ctx.notes.assign_category(note.id, category.id)
                applied = category.name

        await ctx.notes.commit()

        logger.info(
            "Note classified",
            note_id=str(note.id),
            proposed=result.proposed_category_name,
            confidence=result.confidence,
            applied=applied,
        )
        return ExecutionResult(
            tokens_estimate=estimate_tokens(len(text)),
            detail=f"category={applied}" if applied else "unclassified",
        )


class EmbedNoteExecutor:
    """
    Compute and store the embedding for a note's text.

    Payload: {"note_id": "uuid"}

    Skips the remote call when the text hashes to the value recorded by
    the last successful embedding. The vector and the new hash are written
    in one transaction.
    """

    follow_ups: tuple[str, ...] = ()

    def __init__(self, settings: Settings, provider: EnrichmentProvider):
        self.settings = settings
        self.provider = provider

    async def execute(self, ctx: JobContext, payload: NotePayload) -> ExecutionResult:
        note = await _load_note(ctx, payload.note_id)

        text = note.enrichment_text()
        if not text.strip():
            return ExecutionResult(tokens_estimate=0, detail="empty_note")

        if await ctx.guard.should_skip(note.id, EMBEDDING_KIND, text):
            logger.info("Embedding up to date", note_id=str(note.id))
            return ExecutionResult(tokens_estimate=0, detail="unchanged")

        embedding = await self.provider.embed(text)

        await ctx.notes.upsert_embedding(
            ctx.owner, note.id, embedding, self.provider.get_model_version("embedding")
        )
        await ctx.guard.record(note.id, EMBEDDING_KIND, text)
        await ctx.notes.commit()

        logger.info("Note embedded", note_id=str(note.id), dimensions=len(embedding))
        return ExecutionResult(tokens_estimate=estimate_tokens(len(text)), detail="embedded")


class CaptionInkExecutor:
    """
    Caption a handwritten note, then chain an embedding job.

    Payload: {"note_id": "uuid"}

    Image download or captioning failures, including running past
    provider_timeout_s, fall back to a stroke-count caption and still
    succeed. Every produced caption enqueues exactly one embed_note job for
    the note, committed together with the caption.
    """

    follow_ups: tuple[str, ...] = (JobType.EMBED_NOTE.value,)

    def __init__(self, settings: Settings, provider: EnrichmentProvider, blobs: BlobStore):
        self.settings = settings
        self.provider = provider
        self.blobs = blobs

    async def execute(self, ctx: JobContext, payload: NotePayload) -> ExecutionResult:
        note = await _load_note(ctx, payload.note_id)

        if note.ink_caption:
            return ExecutionResult(tokens_estimate=0, detail="already_captioned")
        if note.ink_json is None:
            return ExecutionResult(tokens_estimate=0, detail="no_ink")

        caption, tokens = await self._caption(note)

        await ctx.notes.set_caption(note.id, caption)
        chained = await ctx.queue.enqueue_unique(
            ctx.owner,
            JobType.EMBED_NOTE,
            NotePayload(note_id=note.id),
            commit=False,
        )
        await ctx.notes.commit()

        logger.info(
            "Ink captioned",
            note_id=str(note.id),
            caption=caption,
            embed_job_id=str(chained.job_id),
            deduplicated=chained.deduplicated,
        )
        return ExecutionResult(tokens_estimate=tokens, detail=caption)

    async def _caption(self, note) -> tuple[str, int]:
        """Vision caption when an image is stored, stroke-count caption otherwise."""
        fallback = f"{DEFAULT_CAPTION} ({note.stroke_count()} strokes)"
        if not note.ink_image_path:
            return fallback, FALLBACK_CAPTION_TOKENS

        try:
            async with asyncio.timeout(self.settings.provider_timeout_s):
                image = await self.blobs.download(note.ink_image_path)
                caption = await self.provider.caption(image)
        except Exception as e:
            logger.warning(
                "Ink caption fell back to stroke count",
                note_id=str(note.id),
                image_path=note.ink_image_path,
                error=str(e),
            )
            return fallback, FALLBACK_CAPTION_TOKENS

        caption = " ".join(caption.split()) or DEFAULT_CAPTION
        return caption, VISION_CAPTION_TOKENS


class GeneratePackExecutor:
    """
    Summarize a date range of notes into a knowledge pack.

    Payload: {"range_start": "YYYY-MM-DD", "range_end": "YYYY-MM-DD",
              "mode": "skip" | "overwrite"}

    In skip mode an existing pack for the same owner and range is left
    alone without calling the model.
    """

    follow_ups: tuple[str, ...] = ()

    def __init__(self, settings: Settings, provider: EnrichmentProvider):
        self.settings = settings
        self.provider = provider

    async def execute(self, ctx: JobContext, payload: GeneratePackPayload) -> ExecutionResult:
        existing = await ctx.notes.get_pack(ctx.owner, payload.range_start, payload.range_end)
        if existing is not None and payload.mode == PackMode.SKIP:
            return ExecutionResult(tokens_estimate=0, detail="pack_exists")

        notes = await ctx.notes.notes_in_range(
            ctx.owner, payload.range_start, payload.range_end
        )
        content_md = await self.provider.summarize(
            notes, payload.range_start, payload.range_end
        )

        await ctx.notes.upsert_pack(
            ctx.owner, payload.range_start, payload.range_end, content_md
        )
        await ctx.notes.commit()

        input_chars = sum(
            len(note.title or "") + len(note.content_text or "") + len(note.ink_caption or "")
            for note in notes
        )
        logger.info(
            "Knowledge pack generated",
            range_start=payload.range_start.isoformat(),
            range_end=payload.range_end.isoformat(),
            note_count=len(notes),
            overwritten=existing is not None,
        )
        return ExecutionResult(
            tokens_estimate=estimate_tokens(input_chars + len(content_md)),
            detail=f"notes={len(notes)}",
        )
