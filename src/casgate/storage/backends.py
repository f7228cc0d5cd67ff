"""Durable blob backends for casgate.

A blob backend is a flat, durable key/value store of raw bytes. It knows
nothing about CIDs; DurableBlockStore maps CIDs onto ``blocks/<cid>`` keys.

Backends:
- FilesystemBlobBackend: local directory (dev/test, single host)
- HttpBlobBackend: generic HTTP object store (GET/PUT/HEAD per key)
- MemoryBlobBackend: process-local dict (tests)

Every backend reports a missing key with NotFoundError and any other
failure with StoreError so the two stay distinguishable.
"""

from __future__ import annotations

import asyncio
import logging
import re
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from casgate.errors import NotFoundError, StoreError

logger = logging.getLogger(__name__)

_SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./]+$")

DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "casgate/0.1"


def _is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences or unsafe characters."""
    if not key or "\x00" in key or "\\" in key:
        return True
    if key.startswith("/") or key.startswith("~"):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    if any(segment in ("..", ".", "") for segment in key.split("/")):
        return True
    return not bool(_SAFE_KEY_PATTERN.match(key))


def validate_key(key: str) -> None:
    """Validate a backend key and raise StoreError if it is unsafe."""
    if _is_path_traversal(key):
        raise StoreError("Invalid key: path traversal or unsafe characters detected", key=key)


class BlobBackend(ABC):
    """Abstract durable key/value blob storage."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @abstractmethod
    async def read(self, key: str) -> bytes:
        """Read the blob stored under key.

        Raises:
            NotFoundError: If no blob exists under key.
            StoreError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        """Write data under key, replacing any existing blob atomically.

        Raises:
            StoreError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether a blob exists under key without reading it.

        Raises:
            StoreError: If the backend cannot complete the check.
        """
        ...

    async def aclose(self) -> None:
        """Release backend resources (connections, handles)."""
        return None


class MemoryBlobBackend(BlobBackend):
    """Process-local blob backend, mainly for tests and local runs."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "memory-blob"

    async def read(self, key: str) -> bytes:
        with self._lock:
            data = self._blobs.get(key)
        if data is None:
            raise NotFoundError("Blob not found", key=key)
        return data

    async def write(self, key: str, data: bytes) -> None:
        validate_key(key)
        with self._lock:
            self._blobs[key] = bytes(data)

    async def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._blobs)


class FilesystemBlobBackend(BlobBackend):
    """Filesystem-based blob backend.

    Blobs are stored at ``{base_dir}/{key}``. Writes go to a uniquely named
    temporary file in the same directory and are moved into place with
    ``Path.replace`` so readers never observe a partial blob. Blocking file
    I/O runs in a worker thread so the event loop is never stalled.
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for blobs. If None, uses
                ``<tmp>/casgate_blocks``.
        """
        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "casgate_blocks"
        self._base_dir = Path(base_dir).resolve()
        logger.debug("FilesystemBlobBackend initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path_for(self, key: str) -> Path:
        validate_key(key)
        path = (self._base_dir / key).resolve()
        try:
            path.relative_to(self._base_dir)
        except ValueError as e:
            raise StoreError("Path resolves outside storage base directory", key=key) from e
        return path

    def _read_sync(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NotFoundError("Blob not found", key=key) from e
        except OSError as e:
            raise StoreError(f"Failed to read blob: {e}", key=key, cause=e) from e

    def _write_sync(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        tmp_file = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_bytes(data)
            tmp_file.replace(path)
        except OSError as e:
            if tmp_file.exists():
                tmp_file.unlink(missing_ok=True)
            raise StoreError(f"Failed to write blob: {e}", key=key, cause=e) from e

    def _exists_sync(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            return path.is_file()
        except OSError as e:
            raise StoreError(f"Failed to stat blob: {e}", key=key, cause=e) from e

    async def read(self, key: str) -> bytes:
        return await asyncio.to_thread(self._read_sync, key)

    async def write(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._write_sync, key, data)

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._exists_sync, key)


class HttpBlobBackend(BlobBackend):
    """Blob backend speaking plain HTTP to an object store.

    Objects live at ``{base_url}/{key}``: GET reads, PUT writes, HEAD checks
    existence. 404 maps to NotFoundError; any other non-2xx status or
    transport failure maps to StoreError. Works with stores exposing a
    path-style XML/REST API (GCS, S3-compatible gateways, MinIO) behind a
    bearer token.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the HTTP backend.

        Args:
            base_url: Bucket URL that keys are appended to.
            token: Optional bearer token sent with every request.
            timeout_seconds: Per-request timeout for the default client.
            client: Pre-built client (tests inject one with MockTransport).
        """
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/")
        headers = {"User-Agent": DEFAULT_USER_AGENT}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._headers = headers
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def backend_name(self) -> str:
        return "http"

    def _url_for(self, key: str) -> str:
        validate_key(key)
        return f"{self._base_url}/{key}"

    async def _request(self, method: str, key: str, content: bytes | None = None) -> httpx.Response:
        url = self._url_for(key)
        try:
            return await self._client.request(method, url, content=content, headers=self._headers)
        except httpx.TimeoutException as e:
            raise StoreError(f"Timeout: {e}", key=key, cause=e) from e
        except httpx.HTTPError as e:
            raise StoreError(f"Connection error: {type(e).__name__}", key=key, cause=e) from e

    async def read(self, key: str) -> bytes:
        response = await self._request("GET", key)
        if response.status_code == 404:
            raise NotFoundError("Blob not found", key=key)
        if not response.is_success:
            raise StoreError(f"Blob read failed: HTTP {response.status_code}", key=key)
        return response.content

    async def write(self, key: str, data: bytes) -> None:
        response = await self._request("PUT", key, content=data)
        if not response.is_success:
            raise StoreError(f"Blob write failed: HTTP {response.status_code}", key=key)

    async def exists(self, key: str) -> bool:
        response = await self._request("HEAD", key)
        if response.status_code == 404:
            return False
        if not response.is_success:
            raise StoreError(f"Blob head failed: HTTP {response.status_code}", key=key)
        return True

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
