"""casgate error types.

Provides typed exceptions for addressing, block storage and the content
pipeline. The three failure classes callers must tell apart are:

- InvalidCidError: the identifier is malformed (client input error)
- NotFoundError: the identifier is well formed but no block exists
- StoreError: the durable tier could not be reached or failed

IngestError and EgressError wrap those with add/cat context and keep the
underlying cause available via ``cause`` and ``__cause__``.
"""

from __future__ import annotations

from enum import Enum


class CasError(Exception):
    """Base exception for casgate operations.

    Attributes:
        message: Human-readable error message.
        cid: Canonical CID text associated with the operation (if applicable).
        key: Backend key associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        cid: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cid = cid
        self.key = key

    def __str__(self) -> str:
        parts = [self.message]
        if self.cid:
            parts.append(f"cid={self.cid}")
        if self.key:
            parts.append(f"key={self.key}")
        return " ".join(parts)


class InvalidCidError(CasError):
    """Raised when an identifier cannot be decoded into a CID.

    Covers bad multibase prefixes, bad alphabets, truncated varints,
    unsupported versions, codecs or hash functions, and digest length
    mismatches. Always a client input error; never retried.
    """

    def __init__(
        self,
        message: str = "Invalid CID",
        *,
        value: str | None = None,
    ) -> None:
        super().__init__(message)
        self.value = value

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.message} value={self.value!r}"
        return self.message


class NotFoundError(CasError):
    """Raised when no block exists for a well-formed CID in any tier."""

    def __init__(
        self,
        message: str = "Block not found",
        *,
        cid: str | None = None,
        key: str | None = None,
    ) -> None:
        super().__init__(message, cid=cid, key=key)


class StoreError(CasError):
    """Raised when a storage tier cannot complete an operation.

    Indicates the backend itself failed (network, permission, quota, disk,
    timeout, integrity mismatch) rather than a logical miss.
    """

    def __init__(
        self,
        message: str = "Block store error",
        *,
        cid: str | None = None,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, cid=cid, key=key)
        self.cause = cause


class FailureKind(str, Enum):
    """Coarse failure classification used by boundary layers."""

    INVALID_CID = "invalid_cid"
    NOT_FOUND = "not_found"
    STORE_UNAVAILABLE = "store_unavailable"
    TOO_LARGE = "too_large"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


def classify(exc: BaseException | None) -> FailureKind:
    """Map an underlying exception to a FailureKind."""
    if isinstance(exc, InvalidCidError):
        return FailureKind.INVALID_CID
    if isinstance(exc, NotFoundError):
        return FailureKind.NOT_FOUND
    if isinstance(exc, StoreError):
        return FailureKind.STORE_UNAVAILABLE
    return FailureKind.INTERNAL


class _PipelineError(CasError):
    def __init__(
        self,
        message: str,
        *,
        cid: str | None = None,
        cause: Exception | None = None,
        kind: FailureKind | None = None,
    ) -> None:
        super().__init__(message, cid=cid)
        self.cause = cause
        self.kind = kind if kind is not None else classify(cause)


class IngestError(_PipelineError):
    """Raised when an add call cannot complete.

    Attributes:
        path: Caller-supplied name of the upload (if any).
        kind: FailureKind derived from the cause.
        cause: Underlying StoreError (or other) exception.
    """

    def __init__(
        self,
        message: str = "Ingest failed",
        *,
        path: str | None = None,
        cause: Exception | None = None,
        kind: FailureKind | None = None,
    ) -> None:
        super().__init__(message, cause=cause, kind=kind)
        self.path = path


class EgressError(_PipelineError):
    """Raised through a ContentStream's error channel when cat fails.

    Attributes:
        kind: FailureKind derived from the cause.
        cause: Underlying InvalidCidError, NotFoundError or StoreError.
    """

    def __init__(
        self,
        message: str = "Egress failed",
        *,
        cid: str | None = None,
        cause: Exception | None = None,
        kind: FailureKind | None = None,
    ) -> None:
        super().__init__(message, cid=cid, cause=cause, kind=kind)
