"""Tests for chunking and the chunked object layout.

Covers:
- Fixed-size chunking of bytes, sync and async sources
- Single-block, empty and multi-level objects
- Block de-duplication and size limits
- Reader integrity checks and lazy block fetching
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

import pytest

from casgate.cid import CODEC_DAG_JSON, CODEC_DAG_PB, CODEC_RAW, CID, identify
from casgate.dag import (
    Chunker,
    DagNode,
    Link,
    ObjectReader,
    ObjectTooLargeError,
    ObjectWriter,
    ensure_readable,
)
from casgate.errors import InvalidCidError, NotFoundError, StoreError
from casgate.storage import MemoryBlockStore

ALPHABET = b"abcdefghijklmnopqrst"


async def _collect(iterator: AsyncIterator[bytes]) -> list[bytes]:
    return [chunk async for chunk in iterator]


async def _pieces(*pieces: bytes) -> AsyncIterator[bytes]:
    for piece in pieces:
        yield piece


class CountingStore(MemoryBlockStore):
    """MemoryBlockStore that counts get() calls."""

    def __init__(self) -> None:
        super().__init__()
        self.gets = 0

    async def get(self, cid: Any) -> bytes:
        self.gets += 1
        return await super().get(cid)


class TestChunker:
    """Tests for fixed-size chunking."""

    @pytest.mark.asyncio
    async def test_bytes_split_into_fixed_chunks(self) -> None:
        chunks = await _collect(Chunker(4).chunks(b"abcdefghij"))

        assert chunks == [b"abcd", b"efgh", b"ij"]

    @pytest.mark.asyncio
    async def test_sync_iterable_rechunked(self) -> None:
        chunks = await _collect(Chunker(4).chunks([b"ab", b"cdefg", b"", b"h"]))

        assert chunks == [b"abcd", b"efgh"]

    @pytest.mark.asyncio
    async def test_async_iterable_rechunked(self) -> None:
        chunks = await _collect(Chunker(3).chunks(_pieces(b"a", b"bcdef", b"g")))

        assert chunks == [b"abc", b"def", b"g"]

    @pytest.mark.asyncio
    async def test_empty_source_yields_nothing(self) -> None:
        assert await _collect(Chunker(4).chunks(b"")) == []

    @pytest.mark.asyncio
    async def test_str_rejected(self) -> None:
        with pytest.raises(TypeError):
            await _collect(Chunker(4).chunks("text"))  # type: ignore[arg-type]

    def test_chunk_size_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            Chunker(0)


class TestDagNode:
    """Tests for interior node serialisation."""

    def test_canonical_bytes(self) -> None:
        leaf = identify(b"leaf")
        node = DagNode(links=(Link(cid=leaf, size=4),))

        expected = '{"Links":[{"Hash":{"/":"%s"},"Size":4}],"Size":4}' % leaf
        assert node.to_bytes() == expected.encode("utf-8")
        assert node.cid().codec == CODEC_DAG_JSON

    def test_parse_round_trip(self) -> None:
        node = DagNode(links=(Link(cid=identify(b"a"), size=1), Link(cid=identify(b"bc"), size=2)))

        assert DagNode.from_bytes(node.to_bytes()) == node
        assert node.size == 3

    @pytest.mark.parametrize(
        "data",
        [
            b"not json",
            b"{}",
            b'{"Links":[{"Hash":{"/":"bad"},"Size":1}],"Size":1}',
            b'{"Links":[],"Size":5}',
        ],
    )
    def test_malformed_node_is_store_error(self, data: bytes) -> None:
        with pytest.raises(StoreError):
            DagNode.from_bytes(data)


class TestObjectWriter:
    """Tests for writing chunked objects."""

    @pytest.mark.asyncio
    async def test_single_chunk_root_is_raw_leaf(self) -> None:
        store = MemoryBlockStore()

        result = await ObjectWriter(store).write(b"hello")

        assert result.cid == identify(b"hello")
        assert result.size == 5
        assert result.block_count == 1

    @pytest.mark.asyncio
    async def test_empty_object_is_empty_raw_block(self) -> None:
        store = MemoryBlockStore()

        result = await ObjectWriter(store).write(b"")

        assert result.cid == identify(b"")
        assert result.size == 0
        assert await store.get(result.cid) == b""

    @pytest.mark.asyncio
    async def test_multi_level_tree(self) -> None:
        """5 leaves with 2 links per node -> 3 + 2 + 1 interior nodes."""
        store = MemoryBlockStore()

        result = await ObjectWriter(store, chunk_size=4, max_links=2).write(ALPHABET)

        assert result.cid.codec == CODEC_DAG_JSON
        assert result.size == len(ALPHABET)
        assert result.block_count == 11
        assert len(store) == 11

    @pytest.mark.asyncio
    async def test_duplicate_chunks_stored_once(self) -> None:
        store = MemoryBlockStore()

        result = await ObjectWriter(store, chunk_size=4).write(b"aaaa" * 3)

        assert result.block_count == 4
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_same_content_same_root(self) -> None:
        first = await ObjectWriter(MemoryBlockStore(), chunk_size=4).write(ALPHABET)
        second = await ObjectWriter(MemoryBlockStore(), chunk_size=4).write(
            [ALPHABET[:7], ALPHABET[7:]]
        )

        assert first.cid == second.cid

    @pytest.mark.asyncio
    async def test_limit_exceeded(self) -> None:
        writer = ObjectWriter(MemoryBlockStore(), chunk_size=4, max_bytes=10)

        with pytest.raises(ObjectTooLargeError) as exc_info:
            await writer.write(ALPHABET)

        assert exc_info.value.limit == 10

    def test_max_links_must_allow_a_tree(self) -> None:
        with pytest.raises(ValueError):
            ObjectWriter(MemoryBlockStore(), max_links=1)


class TestObjectReader:
    """Tests for reassembling chunked objects."""

    @pytest.mark.asyncio
    async def test_reassembles_multi_level_object(self) -> None:
        store = MemoryBlockStore()
        result = await ObjectWriter(store, chunk_size=4, max_links=2).write(ALPHABET)
        reader = ObjectReader(store)

        chunks = await _collect(reader.iter_content(result.cid))

        assert b"".join(chunks) == ALPHABET
        assert chunks[0] == b"abcd"

    @pytest.mark.asyncio
    async def test_content_size_from_root(self) -> None:
        store = MemoryBlockStore()
        result = await ObjectWriter(store, chunk_size=4, max_links=3).write(ALPHABET)
        reader = ObjectReader(store)

        root = await reader.fetch_root(result.cid)

        assert reader.content_size(result.cid, root) == len(ALPHABET)

    @pytest.mark.asyncio
    async def test_missing_leaf_raises_not_found(self) -> None:
        store = MemoryBlockStore()
        result = await ObjectWriter(store, chunk_size=4).write(ALPHABET)
        store.delete(identify(b"efgh"))

        chunks: list[bytes] = []
        with pytest.raises(NotFoundError):
            async for chunk in ObjectReader(store).iter_content(result.cid):
                chunks.append(chunk)

        assert chunks == [b"abcd"]

    @pytest.mark.asyncio
    async def test_leaf_size_mismatch_is_store_error(self) -> None:
        store = MemoryBlockStore()
        leaf = identify(b"abcd")
        await store.put(leaf, b"abcd")
        node = DagNode(links=(Link(cid=leaf, size=4),))
        await store.put(node.cid(), node.to_bytes())
        lying = DagNode(links=(Link(cid=node.cid(), size=4), Link(cid=leaf, size=9)))
        await store.put(lying.cid(), lying.to_bytes())

        with pytest.raises(StoreError, match="size"):
            await _collect(ObjectReader(store).iter_content(lying.cid()))

    @pytest.mark.asyncio
    async def test_blocks_fetched_lazily(self) -> None:
        store = CountingStore()
        result = await ObjectWriter(store, chunk_size=4).write(ALPHABET)
        chunks = ObjectReader(store).iter_content(result.cid)

        await chunks.__anext__()
        await chunks.aclose()  # type: ignore[attr-defined]

        # root + first leaf only
        assert store.gets == 2

    def test_dag_pb_not_readable(self) -> None:
        cid = CID(codec=CODEC_DAG_PB, digest=identify(b"pb").digest)

        with pytest.raises(InvalidCidError):
            ensure_readable(cid)

    def test_raw_and_dag_json_readable(self) -> None:
        ensure_readable(identify(b"x", codec=CODEC_RAW))
        ensure_readable(identify(b"x", codec=CODEC_DAG_JSON))
