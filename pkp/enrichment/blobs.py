"""
Blob stores for ink images.

Supports a local filesystem root and an HTTP object storage service.
"""

import asyncio
from pathlib import Path

import httpx

from pkp.config.settings import Settings
from pkp.core.exceptions import NotFoundError, ProviderError


class LocalBlobStore:
    """Reads blobs from a directory tree, mainly for development."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    async def download(self, path: str) -> bytes:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root):
            raise NotFoundError(f"Blob path escapes storage root: {path}")
        if not target.is_file():
            raise NotFoundError(f"Blob not found: {path}")
        return await asyncio.to_thread(target.read_bytes)


class HttpBlobStore:
    """
    Downloads blobs from an object storage HTTP API.

    Objects are fetched from {base_url}/object/{bucket}/{path} with a
    bearer key.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        if not settings.blob_base_url:
            raise ValueError("BLOB_BASE_URL is required for the http blob backend")
        self.settings = settings
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.settings.blob_api_key:
            headers["Authorization"] = f"Bearer {self.settings.blob_api_key}"
        return httpx.AsyncClient(
            base_url=self.settings.blob_base_url,
            headers=headers,
            timeout=self.settings.provider_timeout_s,
            transport=self._transport,
        )

    async def download(self, path: str) -> bytes:
        url = f"/object/{self.settings.blob_bucket}/{path.lstrip('/')}"
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as e:
            raise ProviderError(f"Blob download failed: {e}", {"path": path}) from e

        if response.status_code == 404:
            raise NotFoundError(f"Blob not found: {path}")
        if response.status_code >= 400:
            raise ProviderError(
                f"Blob download failed with HTTP {response.status_code}",
                {"path": path},
            )
        return response.content
