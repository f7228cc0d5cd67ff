"""Block store interface and the in-memory cache tier.

Provides the BlockStore contract that every tier implements, plus
MemoryBlockStore, the process-lifetime cache used as the fast tier of
TieredBlockStore.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

from casgate.cid import CID
from casgate.errors import NotFoundError
from casgate.storage.tracing import traced_block_operation

logger = logging.getLogger(__name__)


class BlockStore(ABC):
    """Abstract base class for block storage tiers.

    All implementations must provide:
    - put: store bytes under a CID (idempotent; content is immutable)
    - get: return the bytes for a CID or raise NotFoundError
    - has: existence check without fetching bytes

    Implementations:
    - MemoryBlockStore: process-lifetime cache tier
    - DurableBlockStore: blob-backend-backed durable tier
    - TieredBlockStore: cache + durable composition
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the tier identifier for observability (e.g., "memory")."""
        ...

    @abstractmethod
    async def put(self, cid: CID, data: bytes) -> None:
        """Store a block.

        Args:
            cid: Content identifier of the block.
            data: Block bytes.

        Raises:
            StoreError: If the tier cannot complete the write.
        """
        ...

    @abstractmethod
    async def get(self, cid: CID) -> bytes:
        """Retrieve a block.

        Args:
            cid: Content identifier of the block.

        Returns:
            The block bytes.

        Raises:
            NotFoundError: If the block does not exist in this tier.
            StoreError: If the tier cannot complete the read.
        """
        ...

    @abstractmethod
    async def has(self, cid: CID) -> bool:
        """Check whether a block exists without fetching it.

        Raises:
            StoreError: If the tier cannot complete the check.
        """
        ...

    async def aclose(self) -> None:
        """Release tier resources (connections, handles)."""
        return None


class MemoryBlockStore(BlockStore):
    """In-memory block store keyed by binary CID.

    Unbounded; lives as long as the process. Access to the map is guarded
    by a lock so concurrent pipelines (or threads) sharing one instance
    never observe a half-updated dict. Content for a CID is identical by
    construction, so last write wins.
    """

    def __init__(self) -> None:
        self._blocks: dict[bytes, bytes] = {}
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    @traced_block_operation("put")
    async def put(self, cid: CID, data: bytes) -> None:
        with self._lock:
            self._blocks[cid.to_bytes()] = bytes(data)

    @traced_block_operation("get")
    async def get(self, cid: CID) -> bytes:
        with self._lock:
            data = self._blocks.get(cid.to_bytes())
        if data is None:
            raise NotFoundError(cid=str(cid))
        return data

    @traced_block_operation("has")
    async def has(self, cid: CID) -> bool:
        with self._lock:
            return cid.to_bytes() in self._blocks

    def delete(self, cid: CID) -> None:
        """Evict a single block."""
        with self._lock:
            self._blocks.pop(cid.to_bytes(), None)

    def clear(self) -> None:
        """Evict every cached block."""
        with self._lock:
            count = len(self._blocks)
            self._blocks.clear()
        logger.debug("Cleared memory block store: evicted=%d", count)

    def __len__(self) -> int:
        with self._lock:
            return len(self._blocks)

    def __contains__(self, cid: object) -> bool:
        if not isinstance(cid, CID):
            return False
        with self._lock:
            return cid.to_bytes() in self._blocks
