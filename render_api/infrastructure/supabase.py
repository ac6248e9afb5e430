"""Integration with the Supabase Storage REST API."""
from __future__ import annotations

import logging
from urllib.parse import quote, urlparse

import httpx

from .storage import ArtifactNotFoundError, StorageError

logger = logging.getLogger(__name__)


class SupabaseStorageClient:
    """Uploads and downloads artifacts in one Supabase Storage bucket."""

    def __init__(
        self,
        url: str,
        service_key: str,
        *,
        bucket: str = "videos",
        content_type: str = "video/mp4",
        timeout: float = 60.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(url)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("url must include scheme and host")
        if not service_key:
            raise ValueError("service_key is required")

        self._base_url = f"{parsed.scheme}://{parsed.netloc}{parsed.path.rstrip('/')}"
        self._service_key = service_key
        self._bucket = bucket
        self._content_type = content_type
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
        }

    def _object_url(self, key: str) -> str:
        return f"{self._base_url}/storage/v1/object/{self._bucket}/{quote(key)}"

    def public_url(self, key: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{quote(key)}"

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    @staticmethod
    def _is_not_found(response: httpx.Response, message: str) -> bool:
        # Storage reports missing objects as 400 with a "not found" body on some versions.
        if response.status_code == 404:
            return True
        return response.status_code == 400 and "not found" in message.lower()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def upload(self, data: bytes, key: str) -> str:
        headers = self._headers()
        headers["Content-Type"] = self._content_type
        headers["x-upsert"] = "true"
        try:
            response = self._client.post(self._object_url(key), content=data, headers=headers)
        except httpx.HTTPError as exc:
            raise StorageError(f"Failed to upload {key}: {exc}") from exc

        if response.is_error:
            raise StorageError(f"Failed to upload {key}: {self._error_message(response)}")

        url = self.public_url(key)
        logger.info("uploaded %s (%d bytes) to %s", key, len(data), url)
        return url

    def download(self, key: str) -> bytes:
        try:
            response = self._client.get(self._object_url(key), headers=self._headers())
        except httpx.HTTPError as exc:
            raise StorageError(f"Failed to download {key}: {exc}") from exc

        if response.is_error:
            message = self._error_message(response)
            if self._is_not_found(response, message):
                raise ArtifactNotFoundError(f"artifact not found: {key}")
            raise StorageError(f"Failed to download {key}: {message}")
        return response.content

    def close(self) -> None:  # pragma: no cover - best effort cleanup
        if self._owns_client:
            self._client.close()


__all__ = ["SupabaseStorageClient"]
