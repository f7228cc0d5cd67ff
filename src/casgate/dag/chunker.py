"""Fixed-size chunking of byte streams.

Accepts ``bytes``, a sync iterable of byte pieces or an async iterable of
byte pieces, and re-slices it into chunks of exactly ``chunk_size`` bytes
(the last chunk may be shorter). Order is preserved; memory held at any
time is bounded by ``chunk_size`` plus the size of one incoming piece.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable
from typing import Union

DEFAULT_CHUNK_SIZE = 256 * 1024

ByteSource = Union[bytes, bytearray, memoryview, Iterable[bytes], AsyncIterable[bytes]]


async def iter_source(source: ByteSource) -> AsyncIterator[bytes]:
    """Normalise any supported byte source into an async iterator of bytes."""
    if isinstance(source, str):
        raise TypeError("Byte source must be bytes, not str")

    if isinstance(source, (bytes, bytearray, memoryview)):
        yield bytes(source)
        return

    if isinstance(source, AsyncIterable):
        async for piece in source:
            yield bytes(piece)
        return

    if isinstance(source, Iterable):
        for piece in source:
            yield bytes(piece)
        return

    raise TypeError(f"Unsupported byte source: {type(source).__name__}")


class Chunker:
    """Splits a byte source into fixed-size chunks."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    async def chunks(self, source: ByteSource) -> AsyncIterator[bytes]:
        """Yield chunks in source order. Yields nothing for empty input."""
        buffer = bytearray()
        async for piece in iter_source(source):
            if not piece:
                continue
            buffer.extend(piece)
            while len(buffer) >= self.chunk_size:
                yield bytes(buffer[: self.chunk_size])
                del buffer[: self.chunk_size]
        if buffer:
            yield bytes(buffer)
