"""Chunked object writer.

Turns a byte source into content-addressed blocks and returns a single
root CID:

- empty input: one empty raw block
- one chunk: the raw leaf itself is the root
- more chunks: raw leaves under a balanced tree of dag-json nodes with at
  most ``max_links`` children each

Leaves are stored as soon as each chunk fills, so only one chunk of
content is held in memory at a time.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from casgate.cid import CID, identify
from casgate.dag.chunker import DEFAULT_CHUNK_SIZE, ByteSource, Chunker
from casgate.dag.node import DagNode, Link
from casgate.storage.block_store import BlockStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_LINKS = 174


class ObjectTooLargeError(Exception):
    """Raised when a source exceeds the writer's byte limit."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        super().__init__(f"Object exceeds limit of {limit} bytes")


@dataclass(frozen=True)
class WriteResult:
    """Result of writing one object.

    Attributes:
        cid: Root CID of the object.
        size: Total content bytes.
        block_count: Number of blocks stored (leaves plus interior nodes).
    """

    cid: CID
    size: int
    block_count: int


class ObjectWriter:
    """Stores byte sources as chunked, content-addressed objects."""

    def __init__(
        self,
        store: BlockStore,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_links: int = DEFAULT_MAX_LINKS,
        max_bytes: int | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            store: Block store receiving every block.
            chunk_size: Leaf size in bytes.
            max_links: Maximum children per interior node (>= 2).
            max_bytes: Optional limit on total content bytes.
        """
        if max_links < 2:
            raise ValueError("max_links must be >= 2")
        self._store = store
        self._chunker = Chunker(chunk_size)
        self._max_links = max_links
        self._max_bytes = max_bytes

    async def write(self, source: ByteSource) -> WriteResult:
        """Store a byte source and return its root.

        Raises:
            ObjectTooLargeError: If max_bytes is set and exceeded.
            StoreError: If any block cannot be stored.
        """
        links: list[Link] = []
        total = 0

        async for chunk in self._chunker.chunks(source):
            total += len(chunk)
            if self._max_bytes is not None and total > self._max_bytes:
                raise ObjectTooLargeError(self._max_bytes)
            cid = identify(chunk)
            await self._store.put(cid, chunk)
            links.append(Link(cid=cid, size=len(chunk)))

        if not links:
            cid = identify(b"")
            await self._store.put(cid, b"")
            return WriteResult(cid=cid, size=0, block_count=1)

        block_count = len(links)
        while len(links) > 1:
            parents: list[Link] = []
            for start in range(0, len(links), self._max_links):
                node = DagNode(links=tuple(links[start : start + self._max_links]))
                cid = node.cid()
                await self._store.put(cid, node.to_bytes())
                parents.append(Link(cid=cid, size=node.size))
            block_count += len(parents)
            links = parents

        root = links[0]
        logger.debug(
            "Wrote object: cid=%s size=%d blocks=%d", root.cid, total, block_count
        )
        return WriteResult(cid=root.cid, size=total, block_count=block_count)
