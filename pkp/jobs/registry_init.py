"""
Job registry initialization.

Registers one executor per job type with the global job registry.
"""

from pkp.config.logging import get_logger
from pkp.config.settings import Settings, settings
from pkp.core.registries import BlobStore, EnrichmentProvider, JobRegistry, job_registry
from pkp.enrichment.registry_init import (
    get_blob_store,
    get_provider,
    init_enrichment_registries,
)
from pkp.jobs.executors import (
    CaptionInkExecutor,
    ClassifyNoteExecutor,
    EmbedNoteExecutor,
    GeneratePackExecutor,
)
from pkp.jobs.models import JobType

logger = get_logger(__name__)


def register_job_handlers(
    config: Settings = settings,
    provider: EnrichmentProvider | None = None,
    blobs: BlobStore | None = None,
    registry: JobRegistry = job_registry,
) -> JobRegistry:
    """
    Register all executors.

    provider and blobs default to the implementations selected by
    settings; tests pass fakes instead.
    """
    if provider is None or blobs is None:
        init_enrichment_registries(config)
        provider = provider or get_provider(config)
        blobs = blobs or get_blob_store(config)

    logger.info("Registering job handlers")

    registry.register(JobType.CLASSIFY_NOTE.value, ClassifyNoteExecutor(config, provider))
    registry.register(JobType.EMBED_NOTE.value, EmbedNoteExecutor(config, provider))
    registry.register(JobType.CAPTION_INK.value, CaptionInkExecutor(config, provider, blobs))
    registry.register(JobType.GENERATE_PACK.value, GeneratePackExecutor(config, provider))

    logger.info(
        "Job handlers registered",
        registered_handlers=registry.list(),
        follow_ups=registry.dependency_graph(),
    )
    return registry
