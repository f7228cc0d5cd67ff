"""Content Service: add/cat pipeline over a block store.

add: byte source -> chunked blocks -> root CID + size
cat: path -> CID -> lazily streamed bytes

Errors never collapse: every failure carries a FailureKind telling bad
input (invalid_cid), absent content (not_found) and backend trouble
(store_unavailable) apart.

ContentStream lifecycle (one cat call):

    CREATED -> VALIDATING -> STREAMING -> COMPLETED
                   |             |
                   +-> FAILED <--+

COMPLETED and FAILED are terminal. Validation (CID parsing and root block
fetch) happens in open(), before any byte is produced; the first
iteration calls open() implicitly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any

from casgate.cid import CID, decode
from casgate.dag import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_LINKS,
    ByteSource,
    ObjectReader,
    ObjectTooLargeError,
    ObjectWriter,
)
from casgate.errors import (
    EgressError,
    FailureKind,
    IngestError,
    InvalidCidError,
    NotFoundError,
    StoreError,
)
from casgate.storage.block_store import BlockStore

logger = logging.getLogger(__name__)

ROUTING_PREFIX = "ipfs/"


def parse_content_path(path: str) -> str:
    """Extract the CID text from a content path.

    Strips surrounding slashes and an optional ``/ipfs/`` routing prefix.
    Objects have no named children, so anything left after the CID is
    rejected rather than resolved to the root.

    Example:
        >>> parse_content_path("/ipfs/bafkqaaa/")
        'bafkqaaa'

    Raises:
        InvalidCidError: If the path has segments after the CID.
    """
    text = path.strip().strip("/")
    if text.startswith(ROUTING_PREFIX):
        text = text[len(ROUTING_PREFIX) :]
    if "/" in text:
        raise InvalidCidError("Invalid CID: sub-paths are not supported", value=path)
    return text


@dataclass(frozen=True)
class AddResult:
    """Result of an add call.

    Attributes:
        path: Caller-supplied name, or the hash when none was given.
        hash: Canonical CID text of the object root.
        size: Total content bytes.
    """

    path: str
    hash: str
    size: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"path": self.path, "hash": self.hash, "size": self.size}


class StreamState(str, Enum):
    """Lifecycle states of a ContentStream."""

    CREATED = "created"
    VALIDATING = "validating"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({StreamState.COMPLETED, StreamState.FAILED})


class ContentStream:
    """Single-pass async byte stream for one cat call.

    Data flows through iteration; failures flow through EgressError, which
    is raised in place of the next chunk and kept on ``error``. Once a
    stream has failed or completed it never yields again.
    """

    def __init__(self, reader: ObjectReader, path: str) -> None:
        self._reader = reader
        self._path = path
        self._state = StreamState.CREATED
        self._error: EgressError | None = None
        self._cid: CID | None = None
        self._size: int | None = None
        self._chunks: AsyncIterator[bytes] | None = None
        self._bytes_emitted = 0
        self._lock = asyncio.Lock()

    @property
    def path(self) -> str:
        return self._path

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def error(self) -> EgressError | None:
        return self._error

    @property
    def cid(self) -> CID | None:
        return self._cid

    @property
    def size(self) -> int | None:
        """Total content length, known once the stream is open."""
        return self._size

    @property
    def bytes_emitted(self) -> int:
        return self._bytes_emitted

    def _fail(self, cause: Exception, message: str | None = None) -> EgressError:
        cid_text = str(self._cid) if self._cid is not None else None
        self._error = EgressError(
            message or f"Content retrieval failed: {cause}",
            cid=cid_text,
            cause=cause,
        )
        self._state = StreamState.FAILED
        logger.info(
            "Content stream failed: path=%s kind=%s emitted=%d error=%s",
            self._path,
            self._error.kind.value,
            self._bytes_emitted,
            cause,
        )
        return self._error

    async def open(self) -> None:
        """Validate the identifier and fetch the root block.

        Idempotent once streaming has started. Concurrent callers wait for
        the first one to finish validating.

        Raises:
            EgressError: If the identifier is invalid, the content is absent
                or the store fails. The stream is FAILED afterwards.
        """
        async with self._lock:
            await self._open_unlocked()

    async def _open_unlocked(self) -> None:
        if self._state is StreamState.FAILED:
            assert self._error is not None
            raise self._error
        if self._state is not StreamState.CREATED:
            return

        self._state = StreamState.VALIDATING
        try:
            self._cid = decode(parse_content_path(self._path))
            root = await self._reader.fetch_root(self._cid)
            self._size = self._reader.content_size(self._cid, root)
        except (InvalidCidError, NotFoundError, StoreError) as e:
            raise self._fail(e) from e

        self._chunks = self._reader.iter_content(self._cid, root)
        self._state = StreamState.STREAMING

    def __aiter__(self) -> ContentStream:
        return self

    async def __anext__(self) -> bytes:
        # One pull at a time: the chunk iterator is a single async generator.
        async with self._lock:
            if self._state is StreamState.CREATED:
                await self._open_unlocked()
            if self._state is StreamState.COMPLETED:
                raise StopAsyncIteration
            if self._state is StreamState.FAILED:
                assert self._error is not None
                raise self._error
            if self._chunks is None:
                raise self._fail(RuntimeError(f"stream is {self._state.value}"))

            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                self._state = StreamState.COMPLETED
                logger.debug("Content stream completed: cid=%s bytes=%d", self._cid, self._bytes_emitted)
                raise
            except (NotFoundError, StoreError) as e:
                raise self._fail(e) from e

            self._bytes_emitted += len(chunk)
            return chunk

    async def aclose(self) -> None:
        """Stop the stream early and release the underlying block reader.

        No further block reads are issued after this returns.
        """
        async with self._lock:
            await self._close_unlocked()

    async def _close_unlocked(self) -> None:
        if self._chunks is not None:
            chunks, self._chunks = self._chunks, None
            aclose = getattr(chunks, "aclose", None)
            if aclose is not None:
                await aclose()
        if self._state not in TERMINAL_STATES:
            self._error = EgressError(
                "Content stream closed by consumer",
                cid=str(self._cid) if self._cid is not None else None,
                kind=FailureKind.CANCELLED,
            )
            self._state = StreamState.FAILED
            logger.debug("Content stream cancelled: path=%s emitted=%d", self._path, self._bytes_emitted)

    async def read(self) -> bytes:
        """Consume the whole stream into memory."""
        parts = [chunk async for chunk in self]
        return b"".join(parts)

    async def __aenter__(self) -> ContentStream:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()


class ContentService:
    """Add/cat pipeline over an injected block store.

    The store is normally a TieredBlockStore; any BlockStore works. One
    service instance is safe to share across concurrent requests.
    """

    def __init__(
        self,
        *,
        store: BlockStore,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_links: int = DEFAULT_MAX_LINKS,
        max_upload_bytes: int | None = None,
    ) -> None:
        """Initialize the content service.

        Args:
            store: Block store holding all blocks.
            chunk_size: Leaf block size in bytes.
            max_links: Maximum children per interior DAG node.
            max_upload_bytes: Optional per-object size limit for add().
        """
        self._store = store
        self._writer = ObjectWriter(
            store,
            chunk_size=chunk_size,
            max_links=max_links,
            max_bytes=max_upload_bytes,
        )
        self._reader = ObjectReader(store)

    @property
    def store(self) -> BlockStore:
        return self._store

    async def add(self, content: ByteSource, *, path: str | None = None) -> AddResult:
        """Store content and return its identifier.

        Args:
            content: bytes, or a sync/async iterable of byte pieces.
            path: Optional caller-supplied name echoed in the result.

        Returns:
            AddResult with path, canonical CID text and byte size.

        Raises:
            IngestError: If a block cannot be stored (kind store_unavailable)
                or the content exceeds max_upload_bytes (kind too_large).
        """
        try:
            result = await self._writer.write(content)
        except ObjectTooLargeError as e:
            raise IngestError(str(e), path=path, cause=e, kind=FailureKind.TOO_LARGE) from e
        except StoreError as e:
            raise IngestError(f"Failed to store content: {e.message}", path=path, cause=e) from e

        cid_text = str(result.cid)
        logger.info(
            "Added content: path=%s cid=%s size=%d blocks=%d",
            path,
            cid_text,
            result.size,
            result.block_count,
        )
        return AddResult(path=path or cid_text, hash=cid_text, size=result.size)

    def cat(self, path: str) -> ContentStream:
        """Create a lazy stream of the content named by path.

        Args:
            path: CID text, optionally prefixed with ``/ipfs/``.

        Returns:
            ContentStream in CREATED state; call open() or iterate it.
        """
        return ContentStream(self._reader, path)

    async def cat_bytes(self, path: str) -> bytes:
        """Retrieve the whole content named by path.

        Raises:
            EgressError: On any retrieval failure.
        """
        async with self.cat(path) as stream:
            return await stream.read()
