"""Durable block tier backed by a blob backend.

Maps each CID onto the key ``blocks/<base32-cid>`` and stores the raw block
bytes there with no metadata envelope. Every backend call goes through the
retry policy; every read is checked against the CID digest so a torn or
corrupted blob surfaces as StoreError instead of wrong bytes.
"""

from __future__ import annotations

import logging

from casgate.cid import CID, encode
from casgate.errors import NotFoundError, StoreError
from casgate.storage.backends import BlobBackend
from casgate.storage.block_store import BlockStore
from casgate.storage.retry import RetryPolicy, call_with_retry
from casgate.storage.tracing import traced_block_operation

logger = logging.getLogger(__name__)

BLOCK_KEY_PREFIX = "blocks/"


def block_key(cid: CID) -> str:
    """Return the durable storage key for a CID."""
    return f"{BLOCK_KEY_PREFIX}{encode(cid)}"


class DurableBlockStore(BlockStore):
    """BlockStore over a BlobBackend.

    The backend handle is injected at construction; nothing here holds
    module-level state.
    """

    def __init__(self, backend: BlobBackend, retry_policy: RetryPolicy | None = None) -> None:
        """Initialize the durable tier.

        Args:
            backend: Blob backend holding the block bytes.
            retry_policy: Timeout/retry settings (defaults if None).
        """
        self._backend = backend
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def backend_name(self) -> str:
        return f"durable:{self._backend.backend_name}"

    @property
    def backend(self) -> BlobBackend:
        return self._backend

    @traced_block_operation("put")
    async def put(self, cid: CID, data: bytes) -> None:
        key = block_key(cid)
        try:
            await call_with_retry(
                lambda: self._backend.write(key, data),
                self._retry_policy,
                description=f"write {key}",
            )
        except StoreError as e:
            raise StoreError(
                f"Durable write failed: {e.message}", cid=str(cid), key=key, cause=e
            ) from e
        logger.debug("Stored block durably: cid=%s size=%d", cid, len(data))

    @traced_block_operation("get")
    async def get(self, cid: CID) -> bytes:
        key = block_key(cid)
        try:
            data = await call_with_retry(
                lambda: self._backend.read(key),
                self._retry_policy,
                description=f"read {key}",
            )
        except NotFoundError as e:
            raise NotFoundError(cid=str(cid), key=key) from e
        except StoreError as e:
            raise StoreError(
                f"Durable read failed: {e.message}", cid=str(cid), key=key, cause=e
            ) from e

        if not cid.verify(data):
            raise StoreError("Block content does not match CID digest", cid=str(cid), key=key)
        return data

    @traced_block_operation("has")
    async def has(self, cid: CID) -> bool:
        key = block_key(cid)
        try:
            return await call_with_retry(
                lambda: self._backend.exists(key),
                self._retry_policy,
                description=f"exists {key}",
            )
        except StoreError as e:
            raise StoreError(
                f"Durable existence check failed: {e.message}", cid=str(cid), key=key, cause=e
            ) from e

    async def aclose(self) -> None:
        await self._backend.aclose()
