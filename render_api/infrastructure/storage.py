"""Durable artifact storage hooks.

The orchestrator only needs two operations from object storage: upload bytes
under a key and read them back. Production wiring installs a
:class:`~render_api.infrastructure.supabase.SupabaseStorageClient` through
``configure_storage_gateway``; without credentials the process falls back to
an in-memory store, which is also what the tests use.
"""
from __future__ import annotations

import threading
from typing import Protocol


class StorageError(RuntimeError):
    """Raised when an upload or download fails."""


class ArtifactNotFoundError(StorageError):
    """Raised when no object exists under the requested key."""


class StorageGateway(Protocol):
    """Contract for artifact storage backends."""

    def upload(self, data: bytes, key: str) -> str:
        """Store ``data`` under ``key`` and return a URL for it."""

    def download(self, key: str) -> bytes:
        """Return the bytes stored under ``key``."""


def artifact_key(job_id: str) -> str:
    return f"{job_id}.mp4"


class InMemoryStorageGateway:
    """Process-local store used when no object storage is configured."""

    def __init__(self, base_url: str = "memory://artifacts") -> None:
        self._base_url = base_url.rstrip("/")
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def upload(self, data: bytes, key: str) -> str:
        with self._lock:
            self._objects[key] = bytes(data)
        return f"{self._base_url}/{key}"

    def download(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[key]
            except KeyError:
                raise ArtifactNotFoundError(f"artifact not found: {key}") from None

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._objects)


_gateway: StorageGateway = InMemoryStorageGateway()


def configure_storage_gateway(gateway: StorageGateway) -> None:
    """Install the storage backend used for rendered artifacts."""

    global _gateway
    _gateway = gateway


def get_storage_gateway() -> StorageGateway:
    """Return the currently configured storage backend."""

    return _gateway
