"""Chunked object layout: splitting byte streams into blocks and back."""

from casgate.dag.chunker import DEFAULT_CHUNK_SIZE, ByteSource, Chunker, iter_source
from casgate.dag.node import DagNode, Link
from casgate.dag.reader import ObjectReader, ensure_readable
from casgate.dag.writer import DEFAULT_MAX_LINKS, ObjectTooLargeError, ObjectWriter, WriteResult

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_MAX_LINKS",
    "ByteSource",
    "Chunker",
    "DagNode",
    "Link",
    "ObjectReader",
    "ObjectTooLargeError",
    "ObjectWriter",
    "WriteResult",
    "ensure_readable",
    "iter_source",
]
