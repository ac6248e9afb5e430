"""Infrastructure layer exports."""

from .jobs import InMemoryJobRepository, JobRepository
from .storage import (
    ArtifactNotFoundError,
    InMemoryStorageGateway,
    StorageError,
    StorageGateway,
    artifact_key,
    configure_storage_gateway,
    get_storage_gateway,
)
from .supabase import SupabaseStorageClient

__all__ = [
    "ArtifactNotFoundError",
    "InMemoryJobRepository",
    "InMemoryStorageGateway",
    "JobRepository",
    "StorageError",
    "StorageGateway",
    "SupabaseStorageClient",
    "artifact_key",
    "configure_storage_gateway",
    "get_storage_gateway",
]
