"""
Enrichment provider implementations.

Supports two backends: stub (deterministic, offline) and openai.
Every call either returns a result or raises ProviderError.
"""

import asyncio
import base64
import hashlib
import json
import math
from datetime import date
from typing import Any

from pydantic import BaseModel, Field, field_validator

from pkp.config.settings import Settings
from pkp.core.exceptions import ProviderError

DEFAULT_CAPTION = "Handwritten note"
DEFAULT_PACK = "# Weekly Knowledge Pack\n\nNo content generated."


class ClassificationResult(BaseModel):
    """Category proposal returned by the classification model."""

    proposed_category_name: str = "Uncategorized"
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    new_category_reason: str | None = None
    language_mix: dict[str, float] = Field(default_factory=lambda: {"en": 1.0})

    @field_validator("proposed_category_name", mode="before")
    @classmethod
    def _default_name(cls, value: Any) -> Any:
        return value or "Uncategorized"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return 0.5
        return min(1.0, max(0.0, float(value)))

    @field_validator("language_mix", mode="before")
    @classmethod
    def _default_mix(cls, value: Any) -> Any:
        return value or {"en": 1.0}


def format_notes_for_pack(notes: list[Any]) -> str:
    """Render notes as numbered blocks for the summarization prompt."""
    blocks = []
    for index, note in enumerate(notes, start=1):
        lines = [f"[Note {index}] ({note.created_at.date().isoformat()})"]
        if note.title:
            lines.append(f"Title: {note.title}")
        if note.content_text:
            lines.append(note.content_text)
        if note.ink_caption:
            lines.append(f"[Handwritten: {note.ink_caption}]")
        blocks.append("\n".join(lines))
    return "\n\n---\n\n".join(blocks)


class StubEnrichmentProvider:
    """
    Deterministic provider for development and testing.

    Produces stable outputs derived from input hashes. No external
    dependencies or API calls required.
    """

    def __init__(self, dimensions: int = 768):
        self._dimensions = dimensions

    async def classify(
        self, text: str, existing_categories: list[str], recent_categories: list[str]
    ) -> ClassificationResult:
        lowered = text.lower()
        for name in [*recent_categories, *existing_categories]:
            if name.lower() in lowered:
                return ClassificationResult(
                    proposed_category_name=name,
                    confidence=0.9,
                    language_mix=self._language_mix(text),
                )
        return ClassificationResult(
            proposed_category_name="Uncategorized",
            confidence=0.3,
            new_category_reason="No existing category matched",
            language_mix=self._language_mix(text),
        )

    async def embed(self, text: str) -> list[float]:
        """Expand a SHA-256 digest into an L2-normalized vector."""
        normalized = text.strip().lower().encode("utf-8")
        vector: list[float] = []
        counter = 0
        while len(vector) < self._dimensions:
            digest = hashlib.sha256(normalized + counter.to_bytes(4, "big")).digest()
            vector.extend((byte / 127.5) - 1.0 for byte in digest)
            counter += 1
        vector = vector[: self._dimensions]

        norm = math.sqrt(sum(x * x for x in vector))
        if norm > 0:
            vector = [x / norm for x in vector]
        return vector

    async def caption(self, image: bytes) -> str:
        return f"{DEFAULT_CAPTION} ({len(image)} bytes)"

    async def summarize(self, notes: list[Any], range_start: date, range_end: date) -> str:
        header = f"# Weekly Knowledge Pack\n\n{range_start.isoformat()} to {range_end.isoformat()}\n"
        if not notes:
            return header + "\nNo notes recorded this week.\n"
        titles = [f"- {note.title or 'Untitled'}" for note in notes]
        return header + "\n## Highlights\n\n" + "\n".join(titles) + "\n"

    def get_model_version(self, purpose: str) -> str:
        return f"stub-{purpose}-v1.0"

    @staticmethod
    def _language_mix(text: str) -> dict[str, float]:
        letters = [ch for ch in text if ch.isalpha()]
        if not letters:
            return {"en": 1.0}
        # Kana and CJK ideographs
        ja = sum(1 for ch in letters if "\u3040" <= ch <= "\u30ff" or "\u4e00" <= ch <= "\u9fff")
        ja_share = round(ja / len(letters), 2)
        return {"ja": ja_share, "en": round(1.0 - ja_share, 2)}


CLASSIFY_SYSTEM_PROMPT = """You categorize personal notes.

Reply with a single JSON object:
{
  "proposed_category_name": "existing or new category name",
  "confidence": number between 0 and 1,
  "new_category_reason": "why a new category is needed, or null",
  "language_mix": {"ja": share, "en": share}
}

Prefer an existing category when it fits (confidence >= 0.7). Otherwise propose
a new one of 1-3 words and explain why. Estimate the language mix of the note."""

PACK_SYSTEM_PROMPT = """You write a weekly knowledge pack from a user's notes.

Produce Markdown with these sections: Top Themes (3-7), Highlights,
Decisions & Learnings, Open Loops, Glossary, Next Week Suggestions.
Group related notes, keep quotes in their original language, and do not
invent anything that is not in the notes."""

CAPTION_PROMPT = (
    "Describe the content of this handwritten note in one concise sentence, "
    "in the language of the handwriting when possible."
)


class OpenAIEnrichmentProvider:
    """
    OpenAI-backed provider.

    Uses chat completions for classification, captioning and packs, and the
    embeddings endpoint with a fixed output dimension.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._client = None

    def _get_client(self):
        """Lazy load the async OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI

            if not self.settings.openai_api_key:
                raise ProviderError(
                    "OPENAI_API_KEY is required for the openai enrichment provider"
                )
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key,
                timeout=self.settings.provider_timeout_s,
            )
        return self._client

    async def _complete(self, purpose: str, **kwargs: Any) -> str:
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(**kwargs),
                timeout=self.settings.provider_timeout_s,
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise ProviderError(f"OpenAI {purpose} call timed out") from e
        except Exception as e:
            raise ProviderError(f"OpenAI {purpose} error: {e}") from e
        return (response.choices[0].message.content or "").strip()

    async def classify(
        self, text: str, existing_categories: list[str], recent_categories: list[str]
    ) -> ClassificationResult:
        user_prompt = (
            f'Note content:\n"""\n{text}\n"""\n\n'
            f"Existing categories: {', '.join(existing_categories) or 'None'}\n"
            f"Recently used categories: {', '.join(recent_categories) or 'None'}"
        )
        content = await self._complete(
            "classification",
            model=self.settings.model_classify,
            messages=[
                {"role": "system", "content": CLASSIFY_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.3,
            response_format={"type": "json_object"},
        )
        if not content:
            raise ProviderError("No response from classification model")
        try:
            return ClassificationResult.model_validate(json.loads(content))
        except ValueError as e:
            raise ProviderError("Failed to parse classification response") from e

    async def embed(self, text: str) -> list[float]:
        client = self._get_client()
        try:
            response = await asyncio.wait_for(
                client.embeddings.create(
                    model=self.settings.model_embedding,
                    input=text,
                    dimensions=self.settings.embedding_dimensions,
                    encoding_format="float",
                ),
                timeout=self.settings.provider_timeout_s,
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise ProviderError("OpenAI embedding call timed out") from e
        except Exception as e:
            raise ProviderError(f"OpenAI embedding error: {e}") from e

        vector = list(response.data[0].embedding)
        if len(vector) != self.settings.embedding_dimensions:
            raise ProviderError(
                f"Embedding has {len(vector)} dimensions, "
                f"expected {self.settings.embedding_dimensions}"
            )
        return vector

    async def caption(self, image: bytes) -> str:
        encoded = base64.b64encode(image).decode("ascii")
        content = await self._complete(
            "caption",
            model=self.settings.model_caption,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": CAPTION_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{encoded}"},
                        },
                    ],
                }
            ],
            max_tokens=200,
        )
        return content or DEFAULT_CAPTION

    async def summarize(self, notes: list[Any], range_start: date, range_end: date) -> str:
        user_prompt = (
            f"Create a Weekly Knowledge Pack for {range_start.isoformat()} to "
            f"{range_end.isoformat()}.\n\nNotes from this period:\n"
            f"{format_notes_for_pack(notes) or 'No notes recorded this week.'}"
        )
        content = await self._complete(
            "knowledge pack",
            model=self.settings.model_pack,
            messages=[
                {"role": "system", "content": PACK_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.7,
            max_tokens=2000,
        )
        return content or DEFAULT_PACK

    def get_model_version(self, purpose: str) -> str:
        models = {
            "embedding": self.settings.model_embedding,
            "classify": self.settings.model_classify,
            "caption": self.settings.model_caption,
            "pack": self.settings.model_pack,
        }
        return models.get(purpose, self.settings.model_classify)
