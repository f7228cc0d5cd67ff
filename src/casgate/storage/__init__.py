"""casgate block storage.

Provides content-addressed block tiers and their composition.

Tiers:
- MemoryBlockStore: process-lifetime cache
- DurableBlockStore: blob-backend-backed authoritative tier
- TieredBlockStore: cache-first reads, write-through writes

Blob backends:
- FilesystemBlobBackend: local directory
- HttpBlobBackend: HTTP object store
- MemoryBlobBackend: process-local (tests)
"""

from casgate.errors import (
    CasError,
    EgressError,
    FailureKind,
    IngestError,
    InvalidCidError,
    NotFoundError,
    StoreError,
)
from casgate.storage.backends import (
    BlobBackend,
    FilesystemBlobBackend,
    HttpBlobBackend,
    MemoryBlobBackend,
)
from casgate.storage.block_store import BlockStore, MemoryBlockStore
from casgate.storage.durable_store import DurableBlockStore, block_key
from casgate.storage.retry import RetryPolicy
from casgate.storage.tiered_store import TieredBlockStore

__all__ = [
    "BlobBackend",
    "BlockStore",
    "CasError",
    "DurableBlockStore",
    "EgressError",
    "FailureKind",
    "FilesystemBlobBackend",
    "HttpBlobBackend",
    "IngestError",
    "InvalidCidError",
    "MemoryBlobBackend",
    "MemoryBlockStore",
    "NotFoundError",
    "RetryPolicy",
    "StoreError",
    "TieredBlockStore",
    "block_key",
]
