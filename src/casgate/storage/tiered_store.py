"""Two-tier block store: fast cache in front of a durable tier.

Read path:  cache hit -> return; miss -> durable -> populate cache -> return
Write path: cache -> durable (write-through; durable failure fails the put)
Has path:   cache -> durable existence check (never populates the cache)

Failure policy:
- Durable write fails after the cache write: the cache entry is kept. The
  bytes are valid for that CID by construction, so a later retry of put()
  only has to repeat the durable write.
- Cache write fails (e.g. MemoryError): logged and ignored. The durable
  tier is the source of truth; put() succeeds once the durable write does.
"""

from __future__ import annotations

import logging

from casgate.cid import CID
from casgate.errors import NotFoundError
from casgate.storage.block_store import BlockStore
from casgate.storage.tracing import traced_block_operation

logger = logging.getLogger(__name__)


class TieredBlockStore(BlockStore):
    """Cache-first, write-through composition of two BlockStores.

    Both tiers are injected, so any BlockStore can play either role. No
    lock is held across durable I/O; operations on different CIDs never
    wait on each other.
    """

    def __init__(self, cache: BlockStore, durable: BlockStore) -> None:
        """Initialize the tiered store.

        Args:
            cache: Fast, ephemeral tier (usually MemoryBlockStore).
            durable: Authoritative tier (usually DurableBlockStore).
        """
        self._cache = cache
        self._durable = durable

    @property
    def backend_name(self) -> str:
        return f"tiered:{self._cache.backend_name}+{self._durable.backend_name}"

    @property
    def cache(self) -> BlockStore:
        return self._cache

    @property
    def durable(self) -> BlockStore:
        return self._durable

    async def _cache_put(self, cid: CID, data: bytes) -> None:
        try:
            await self._cache.put(cid, data)
        except (MemoryError, OSError) as e:
            logger.warning("Cache write failed, continuing with durable tier: cid=%s error=%s", cid, e)

    @traced_block_operation("put")
    async def put(self, cid: CID, data: bytes) -> None:
        await self._cache_put(cid, data)
        await self._durable.put(cid, data)

    @traced_block_operation("get")
    async def get(self, cid: CID) -> bytes:
        try:
            return await self._cache.get(cid)
        except NotFoundError:
            pass

        data = await self._durable.get(cid)
        await self._cache_put(cid, data)
        logger.debug("Cache miss served from durable tier: cid=%s size=%d", cid, len(data))
        return data

    @traced_block_operation("has")
    async def has(self, cid: CID) -> bool:
        if await self._cache.has(cid):
            return True
        return await self._durable.has(cid)

    async def aclose(self) -> None:
        await self._cache.aclose()
        await self._durable.aclose()
