"""casgate runtime configuration.

Settings are read from the environment once at startup and passed down
explicitly; nothing below this module reads os.environ for storage wiring.

Environment Variables:
    CASGATE_BLOCK_BACKEND: "filesystem", "http" or "memory" (default: "filesystem")
    CASGATE_BLOCK_DIR: Base directory for the filesystem backend
        (default: OS temp dir / casgate_blocks)
    CASGATE_BLOB_BASE_URL: Bucket URL for the http backend (required for "http")
    CASGATE_BLOB_TOKEN: Bearer token for the http backend (optional)
    CASGATE_CHUNK_SIZE: Leaf block size in bytes (default: 262144)
    CASGATE_MAX_LINKS: Maximum children per DAG node (default: 174)
    CASGATE_DURABLE_TIMEOUT_SECONDS: Per-attempt durable timeout (default: 30)
    CASGATE_DURABLE_MAX_ATTEMPTS: Durable attempts incl. the first (default: 3)
    CASGATE_MAX_UPLOAD_BYTES: Per-object add limit, 0 = unlimited (default: 0)
    CASGATE_HOST: Bind address for `casgate serve` (default: "0.0.0.0")
    PORT: Listen port for `casgate serve` (default: 8080)
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from casgate.dag import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_LINKS
from casgate.storage.retry import DEFAULT_MAX_ATTEMPTS, DEFAULT_TIMEOUT_SECONDS

CASGATE_BLOCK_BACKEND_ENV = "CASGATE_BLOCK_BACKEND"
CASGATE_BLOCK_DIR_ENV = "CASGATE_BLOCK_DIR"
CASGATE_BLOB_BASE_URL_ENV = "CASGATE_BLOB_BASE_URL"
CASGATE_BLOB_TOKEN_ENV = "CASGATE_BLOB_TOKEN"
CASGATE_CHUNK_SIZE_ENV = "CASGATE_CHUNK_SIZE"
CASGATE_MAX_LINKS_ENV = "CASGATE_MAX_LINKS"
CASGATE_DURABLE_TIMEOUT_ENV = "CASGATE_DURABLE_TIMEOUT_SECONDS"
CASGATE_DURABLE_MAX_ATTEMPTS_ENV = "CASGATE_DURABLE_MAX_ATTEMPTS"
CASGATE_MAX_UPLOAD_BYTES_ENV = "CASGATE_MAX_UPLOAD_BYTES"
CASGATE_HOST_ENV = "CASGATE_HOST"
PORT_ENV = "PORT"

VALID_BACKENDS = frozenset({"filesystem", "http", "memory"})


class ConfigError(Exception):
    """Raised when the environment holds an invalid setting."""


@dataclass(frozen=True)
class Settings:
    """Resolved casgate settings."""

    block_backend: str = "filesystem"
    block_dir: Path = Path(tempfile.gettempdir()) / "casgate_blocks"
    blob_base_url: str | None = None
    blob_token: str | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_links: int = DEFAULT_MAX_LINKS
    durable_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    durable_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_upload_bytes: int | None = None
    host: str = "0.0.0.0"
    port: int = 8080


def _get_str(env: Mapping[str, str], key: str) -> str | None:
    val = env.get(key, "").strip()
    return val or None


def _get_int(env: Mapping[str, str], key: str, default: int, *, minimum: int) -> int:
    raw = _get_str(env, key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = _get_str(env, key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {value}")
    return value


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables.

    Args:
        env: Mapping to read from (defaults to os.environ).

    Raises:
        ConfigError: If any value is malformed or a required value is missing.
    """
    if env is None:
        env = os.environ

    backend = (_get_str(env, CASGATE_BLOCK_BACKEND_ENV) or "filesystem").lower()
    if backend not in VALID_BACKENDS:
        raise ConfigError(
            f"{CASGATE_BLOCK_BACKEND_ENV} must be one of {sorted(VALID_BACKENDS)}, got {backend!r}"
        )

    blob_base_url = _get_str(env, CASGATE_BLOB_BASE_URL_ENV)
    if backend == "http" and blob_base_url is None:
        raise ConfigError(f"{CASGATE_BLOB_BASE_URL_ENV} is required for the http backend")

    block_dir_raw = _get_str(env, CASGATE_BLOCK_DIR_ENV)
    max_upload = _get_int(env, CASGATE_MAX_UPLOAD_BYTES_ENV, 0, minimum=0)

    return Settings(
        block_backend=backend,
        block_dir=Path(block_dir_raw) if block_dir_raw else Settings.block_dir,
        blob_base_url=blob_base_url,
        blob_token=_get_str(env, CASGATE_BLOB_TOKEN_ENV),
        chunk_size=_get_int(env, CASGATE_CHUNK_SIZE_ENV, DEFAULT_CHUNK_SIZE, minimum=1),
        max_links=_get_int(env, CASGATE_MAX_LINKS_ENV, DEFAULT_MAX_LINKS, minimum=2),
        durable_timeout_seconds=_get_float(
            env, CASGATE_DURABLE_TIMEOUT_ENV, DEFAULT_TIMEOUT_SECONDS
        ),
        durable_max_attempts=_get_int(
            env, CASGATE_DURABLE_MAX_ATTEMPTS_ENV, DEFAULT_MAX_ATTEMPTS, minimum=1
        ),
        max_upload_bytes=max_upload or None,
        host=_get_str(env, CASGATE_HOST_ENV) or "0.0.0.0",
        port=_get_int(env, PORT_ENV, 8080, minimum=1),
    )
