"""Content addressing for casgate blocks.

A CID is derived from block bytes with SHA2-256 and carried in two forms:

- binary: ``varint(version) || varint(codec) || multihash`` (CIDv1)
- text: multibase base32, lowercase, no padding, prefixed with ``b``

The text form is the canonical external representation and the suffix of
every durable storage key (``blocks/<text>``). Legacy CIDv0 strings
(base58btc, ``Qm...``) are accepted by decode() and normalised to their
CIDv1 equivalent.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Final

from casgate.errors import InvalidCidError

CID_VERSION_0: Final[int] = 0
CID_VERSION_1: Final[int] = 1

CODEC_RAW: Final[int] = 0x55
CODEC_DAG_PB: Final[int] = 0x70
CODEC_DAG_JSON: Final[int] = 0x0129

CODEC_NAMES: Final[dict[int, str]] = {
    CODEC_RAW: "raw",
    CODEC_DAG_PB: "dag-pb",
    CODEC_DAG_JSON: "dag-json",
}

SHA2_256: Final[int] = 0x12
SHA2_256_LENGTH: Final[int] = 32

MULTIBASE_BASE32: Final[str] = "b"

_BASE58_ALPHABET: Final[str] = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX: Final[dict[str, int]] = {c: i for i, c in enumerate(_BASE58_ALPHABET)}

_MAX_VARINT_BYTES = 9


def encode_varint(value: int) -> bytes:
    """Encode a non-negative integer as an unsigned LEB128 varint."""
    if value < 0:
        raise ValueError("varint must be non-negative")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint.

    Returns:
        Tuple of (value, offset of the first byte after the varint).

    Raises:
        InvalidCidError: If the varint is truncated or too long.
    """
    value = 0
    shift = 0
    for i in range(_MAX_VARINT_BYTES):
        pos = offset + i
        if pos >= len(data):
            raise InvalidCidError("Invalid CID: truncated varint")
        byte = data[pos]
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            if byte == 0 and i > 0:
                raise InvalidCidError("Invalid CID: non-minimal varint")
            return value, pos + 1
        shift += 7
    raise InvalidCidError("Invalid CID: varint too long")


@dataclass(frozen=True)
class CID:
    """A version 1 content identifier.

    Attributes:
        codec: Multicodec of the block content (raw, dag-json, dag-pb).
        digest: SHA2-256 digest of the block bytes.
        hash_code: Multihash function code (only sha2-256 is supported).
        version: CID version (always 1 once constructed).
    """

    codec: int
    digest: bytes
    hash_code: int = SHA2_256
    version: int = CID_VERSION_1

    @property
    def codec_name(self) -> str:
        return CODEC_NAMES.get(self.codec, hex(self.codec))

    @property
    def multihash(self) -> bytes:
        return encode_varint(self.hash_code) + encode_varint(len(self.digest)) + self.digest

    def to_bytes(self) -> bytes:
        """Return the compact binary form used as an in-memory store key."""
        return encode_varint(self.version) + encode_varint(self.codec) + self.multihash

    def verify(self, data: bytes) -> bool:
        """Check that data hashes to this CID's digest."""
        return hmac.compare_digest(hashlib.sha256(data).digest(), self.digest)

    def __str__(self) -> str:
        return encode(self)


def identify(data: bytes, codec: int = CODEC_RAW) -> CID:
    """Derive the CID of a block.

    Args:
        data: Block bytes.
        codec: Multicodec describing how the bytes are interpreted.

    Returns:
        Deterministic CIDv1 for the bytes.
    """
    if codec not in CODEC_NAMES:
        raise ValueError(f"Unsupported codec: {codec:#x}")
    return CID(codec=codec, digest=hashlib.sha256(data).digest())


def encode(cid: CID) -> str:
    """Encode a CID as canonical multibase base32 text."""
    text = base64.b32encode(cid.to_bytes()).decode("ascii").lower().rstrip("=")
    return MULTIBASE_BASE32 + text


def _b32decode(text: str) -> bytes:
    if text != text.lower():
        raise InvalidCidError("Invalid CID: base32 text must be lowercase", value=text)
    padding = "=" * (-len(text) % 8)
    try:
        return base64.b32decode(text.upper() + padding)
    except (binascii.Error, ValueError) as e:
        raise InvalidCidError("Invalid CID: bad base32 encoding", value=text) from e


def _b58decode(text: str) -> bytes:
    num = 0
    for char in text:
        index = _BASE58_INDEX.get(char)
        if index is None:
            raise InvalidCidError("Invalid CID: bad base58 encoding", value=text)
        num = num * 58 + index
    leading_zeros = len(text) - len(text.lstrip("1"))
    body = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * leading_zeros + body


def _parse_multihash(data: bytes, offset: int) -> tuple[int, bytes]:
    hash_code, offset = decode_varint(data, offset)
    if hash_code != SHA2_256:
        raise InvalidCidError(f"Invalid CID: unsupported hash function {hash_code:#x}")
    length, offset = decode_varint(data, offset)
    if length != SHA2_256_LENGTH:
        raise InvalidCidError(f"Invalid CID: bad digest length {length}")
    digest = data[offset : offset + length]
    if len(digest) != length:
        raise InvalidCidError("Invalid CID: truncated digest")
    if offset + length != len(data):
        raise InvalidCidError("Invalid CID: trailing bytes after digest")
    return hash_code, digest


def _from_bytes(data: bytes) -> CID:
    if not data:
        raise InvalidCidError("Invalid CID: empty input")

    # CIDv0 is a bare sha2-256 multihash
    if len(data) == 2 + SHA2_256_LENGTH and data[0] == SHA2_256 and data[1] == SHA2_256_LENGTH:
        hash_code, digest = _parse_multihash(data, 0)
        return CID(codec=CODEC_DAG_PB, digest=digest, hash_code=hash_code)

    version, offset = decode_varint(data, 0)
    if version != CID_VERSION_1:
        raise InvalidCidError(f"Invalid CID: unsupported version {version}")
    codec, offset = decode_varint(data, offset)
    if codec not in CODEC_NAMES:
        raise InvalidCidError(f"Invalid CID: unsupported codec {codec:#x}")
    hash_code, digest = _parse_multihash(data, offset)
    return CID(codec=codec, digest=digest, hash_code=hash_code)


def decode(value: str | bytes | bytearray | memoryview) -> CID:
    """Parse a CID from its text or binary form.

    Args:
        value: Multibase text (``b...`` base32 or ``Qm...`` base58btc) or
            binary CID bytes.

    Returns:
        The decoded CID.

    Raises:
        InvalidCidError: For any malformed or unsupported input.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _from_bytes(bytes(value))

    if not isinstance(value, str):
        raise InvalidCidError(f"Invalid CID: unsupported type {type(value).__name__}")

    text = value.strip()
    if not text:
        raise InvalidCidError("Invalid CID: empty input", value=value)

    try:
        if len(text) == 46 and text.startswith("Qm"):
            return _from_bytes(_b58decode(text))
        if text[0] != MULTIBASE_BASE32:
            raise InvalidCidError("Invalid CID: unsupported multibase prefix", value=value)
        return _from_bytes(_b32decode(text[1:]))
    except InvalidCidError as e:
        if e.value is None:
            e.value = value
        raise
