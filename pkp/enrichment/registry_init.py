"""
Initialize enrichment provider and blob store registries.

Registers the available implementations and validates that the configured
ones can be resolved.
"""

from pkp.config.settings import BlobBackend, EnrichmentProviderType, Settings, settings
from pkp.core.registries import (
    BlobStore,
    EnrichmentProvider,
    blob_store_registry,
    provider_registry,
)
from pkp.enrichment.blobs import HttpBlobStore, LocalBlobStore
from pkp.enrichment.providers import OpenAIEnrichmentProvider, StubEnrichmentProvider


def init_enrichment_registries(config: Settings = settings) -> None:
    """Register providers and blob stores for the given settings."""

    # Always register the stub provider (no dependencies)
    provider_registry.register(
        EnrichmentProviderType.STUB.value,
        StubEnrichmentProvider(dimensions=config.embedding_dimensions),
    )

    # OpenAI client is created lazily, so registration never needs the key
    provider_registry.register(
        EnrichmentProviderType.OPENAI.value, OpenAIEnrichmentProvider(config)
    )

    blob_store_registry.register(BlobBackend.LOCAL.value, LocalBlobStore(config.blob_local_root))
    if config.blob_base_url:
        blob_store_registry.register(BlobBackend.HTTP.value, HttpBlobStore(config))

    # Validate configured implementations are available
    try:
        provider_registry.get(config.enrichment_provider.value)
        blob_store_registry.get(config.blob_backend.value)
    except KeyError as e:
        raise RuntimeError(
            f"Configured enrichment backend not available: {e}. "
            f"Providers: {provider_registry.list()}, "
            f"blob stores: {blob_store_registry.list()}"
        ) from e


def get_provider(config: Settings = settings) -> EnrichmentProvider:
    return provider_registry.get(config.enrichment_provider.value)


def get_blob_store(config: Settings = settings) -> BlobStore:
    return blob_store_registry.get(config.blob_backend.value)
