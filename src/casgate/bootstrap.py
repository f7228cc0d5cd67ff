"""Wiring of settings into stores and services.

The durable backend handle is built once here and threaded explicitly into
the block store and content service; no component reaches for a global.
"""

from __future__ import annotations

import logging

from casgate.config import Settings
from casgate.services.content import ContentService
from casgate.storage import (
    BlobBackend,
    DurableBlockStore,
    FilesystemBlobBackend,
    HttpBlobBackend,
    MemoryBlobBackend,
    MemoryBlockStore,
    RetryPolicy,
    TieredBlockStore,
)

logger = logging.getLogger(__name__)


def build_blob_backend(settings: Settings) -> BlobBackend:
    """Create the durable blob backend selected by settings."""
    if settings.block_backend == "http":
        assert settings.blob_base_url is not None
        backend: BlobBackend = HttpBlobBackend(
            settings.blob_base_url,
            token=settings.blob_token,
            timeout_seconds=settings.durable_timeout_seconds,
        )
    elif settings.block_backend == "memory":
        backend = MemoryBlobBackend()
    else:
        backend = FilesystemBlobBackend(settings.block_dir)

    logger.info("Durable blob backend selected: %s", backend.backend_name)
    return backend


def build_block_store(settings: Settings, backend: BlobBackend | None = None) -> TieredBlockStore:
    """Create the memory-cache + durable TieredBlockStore."""
    durable = DurableBlockStore(
        backend if backend is not None else build_blob_backend(settings),
        RetryPolicy(
            max_attempts=settings.durable_max_attempts,
            timeout_seconds=settings.durable_timeout_seconds,
        ),
    )
    return TieredBlockStore(cache=MemoryBlockStore(), durable=durable)


def build_content_service(
    settings: Settings, backend: BlobBackend | None = None
) -> ContentService:
    """Create a ContentService over a freshly wired TieredBlockStore."""
    return ContentService(
        store=build_block_store(settings, backend),
        chunk_size=settings.chunk_size,
        max_links=settings.max_links,
        max_upload_bytes=settings.max_upload_bytes,
    )
