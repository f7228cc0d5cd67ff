"""Chunked object reader.

Reconstructs an object's bytes from its root CID by walking the DAG
depth-first, left to right, fetching one block at a time. Blocks are
pulled lazily: a consumer that stops iterating stops further reads.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator

from casgate.cid import CODEC_DAG_JSON, CODEC_RAW, CID
from casgate.dag.node import DagNode, Link
from casgate.errors import InvalidCidError, StoreError
from casgate.storage.block_store import BlockStore

logger = logging.getLogger(__name__)

READABLE_CODECS = frozenset({CODEC_RAW, CODEC_DAG_JSON})


def ensure_readable(cid: CID) -> None:
    """Reject CIDs whose codec this reader cannot reassemble.

    Raises:
        InvalidCidError: For codecs other than raw and dag-json.
    """
    if cid.codec not in READABLE_CODECS:
        raise InvalidCidError(
            f"Invalid CID: codec {cid.codec_name} is not supported for retrieval",
            value=str(cid),
        )


class ObjectReader:
    """Streams object content out of a block store."""

    def __init__(self, store: BlockStore) -> None:
        self._store = store

    async def fetch_root(self, cid: CID) -> bytes:
        """Fetch the root block of an object.

        Raises:
            InvalidCidError: If the codec is not readable.
            NotFoundError: If the root block does not exist.
            StoreError: If the store fails.
        """
        ensure_readable(cid)
        return await self._store.get(cid)

    def content_size(self, cid: CID, root_data: bytes) -> int:
        """Return the total content length declared by a root block."""
        if cid.codec == CODEC_RAW:
            return len(root_data)
        return DagNode.from_bytes(root_data, cid=cid).size

    async def iter_content(
        self, cid: CID, root_data: bytes | None = None
    ) -> AsyncIterator[bytes]:
        """Yield the object's content in order.

        Args:
            cid: Root CID.
            root_data: Root block bytes if already fetched.
        """
        if root_data is None:
            root_data = await self.fetch_root(cid)

        if cid.codec == CODEC_RAW:
            yield root_data
            return

        pending: list[Iterator[Link]] = [iter(DagNode.from_bytes(root_data, cid=cid).links)]
        while pending:
            link = next(pending[-1], None)
            if link is None:
                pending.pop()
                continue

            child = await self._store.get(link.cid)
            if link.cid.codec == CODEC_RAW:
                if len(child) != link.size:
                    raise StoreError("Leaf size does not match its link", cid=str(link.cid))
                yield child
            elif link.cid.codec == CODEC_DAG_JSON:
                node = DagNode.from_bytes(child, cid=link.cid)
                if node.size != link.size:
                    raise StoreError("Node size does not match its link", cid=str(link.cid))
                pending.append(iter(node.links))
            else:
                raise StoreError(
                    f"DAG links to unsupported codec {link.cid.codec_name}", cid=str(link.cid)
                )
