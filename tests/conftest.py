"""Pytest configuration and fixtures for casgate tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

from typing import Any

import pytest

from casgate.errors import StoreError
from casgate.storage import (
    BlobBackend,
    DurableBlockStore,
    MemoryBlobBackend,
    MemoryBlockStore,
    RetryPolicy,
    TieredBlockStore,
)

NO_RETRY = RetryPolicy(max_attempts=1, timeout_seconds=5.0)


class FailingBlobBackend(BlobBackend):
    """Blob backend that fails every call with StoreError."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []

    @property
    def backend_name(self) -> str:
        return "failing"

    async def read(self, key: str) -> bytes:
        self.calls.append(("read", key))
        raise StoreError("backend offline", key=key)

    async def write(self, key: str, data: bytes) -> None:
        self.calls.append(("write", key))
        raise StoreError("backend offline", key=key)

    async def exists(self, key: str) -> bool:
        self.calls.append(("exists", key))
        raise StoreError("backend offline", key=key)


@pytest.fixture(autouse=True)
def disable_tracing(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep OpenTelemetry off unless a test enables it explicitly."""
    monkeypatch.delenv("CASGATE_OTEL_ENABLED", raising=False)
    monkeypatch.delenv("CASGATE_OTEL_TEST_CAPTURE", raising=False)


@pytest.fixture
def blob_backend() -> MemoryBlobBackend:
    """Return an empty in-memory blob backend."""
    return MemoryBlobBackend()


@pytest.fixture
def failing_backend() -> FailingBlobBackend:
    """Return a blob backend that is always unavailable."""
    return FailingBlobBackend()


@pytest.fixture
def cache() -> MemoryBlockStore:
    """Return an empty memory cache tier."""
    return MemoryBlockStore()


@pytest.fixture
def tiered_store(cache: MemoryBlockStore, blob_backend: MemoryBlobBackend) -> Any:
    """Create a TieredBlockStore over a memory cache and memory-backed durable tier."""
    return TieredBlockStore(cache=cache, durable=DurableBlockStore(blob_backend, NO_RETRY))


@pytest.fixture
def offline_store(cache: MemoryBlockStore, failing_backend: FailingBlobBackend) -> Any:
    """Create a TieredBlockStore whose durable tier is unreachable."""
    return TieredBlockStore(cache=cache, durable=DurableBlockStore(failing_backend, NO_RETRY))
