from typing import Any, Generic, Protocol, TypeVar

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen in production mode"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Enrichment provider registry - remote AI collaborators
class EnrichmentProvider(Protocol):
    """Protocol for the AI functions consumed by job executors."""

    async def classify(
        self, text: str, existing_categories: list[str], recent_categories: list[str]
    ) -> Any:
        """Propose a category for a note. Returns a ClassificationResult."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Compute a fixed-length embedding vector for text."""
        ...

    async def caption(self, image: bytes) -> str:
        """Describe a handwritten ink image in one line."""
        ...

    async def summarize(self, notes: list[Any], range_start: Any, range_end: Any) -> str:
        """Produce a Markdown knowledge pack for the notes in a date range."""
        ...

    def get_model_version(self, purpose: str) -> str:
        """Get the model identifier used for a purpose (embedding, classify, ...)."""
        ...


class EnrichmentProviderRegistry(Registry[EnrichmentProvider]):
    """Registry for enrichment providers (stub, openai)."""

    def __init__(self):
        super().__init__("EnrichmentProvider")


# Blob store registry - ink image storage
class BlobStore(Protocol):
    """Protocol for reading stored ink images."""

    async def download(self, path: str) -> bytes:
        """Fetch the bytes stored at path."""
        ...


class BlobStoreRegistry(Registry[BlobStore]):
    """Registry for blob stores (local, http)."""

    def __init__(self):
        super().__init__("BlobStore")


# Job Registry - executors keyed by job type
class JobExecutor(Protocol):
    """Protocol for job executors that process one job type."""

    # Job types this executor may enqueue after a successful run
    follow_ups: tuple[str, ...]

    async def execute(self, ctx: Any, payload: Any) -> Any:
        """
        Execute a claimed job.

        Args:
            ctx: JobContext with owner scope, repositories and the job store
            payload: Validated payload model for the job type

        Returns:
            ExecutionResult; any raised exception is a transient failure
        """
        ...


class JobRegistry(Registry[JobExecutor]):
    """Registry for job executors."""

    def __init__(self):
        super().__init__("Job")

    def dependency_graph(self) -> dict[str, tuple[str, ...]]:
        """Map each registered job type to the job types it may enqueue."""
        return {
            name: tuple(getattr(executor, "follow_ups", ()))
            for name, executor in self._implementations.items()
        }


# Global registry instances (singletons)
provider_registry = EnrichmentProviderRegistry()
blob_store_registry = BlobStoreRegistry()
job_registry = JobRegistry()
