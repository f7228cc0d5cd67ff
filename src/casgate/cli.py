"""casgate CLI.

Usage:
    python -m casgate serve [--host HOST] [--port PORT] [--log-level LEVEL]
    python -m casgate add FILE [--name NAME]
    python -m casgate cat CID [--out FILE]

Storage is configured from CASGATE_* environment variables (see
casgate.config).

Exit codes:
    0: Success
    1: Store failure / internal error
    2: Invalid CID or invalid configuration
    3: Content not found
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any, BinaryIO

from casgate.api.middleware.request_id import RequestIdLogFilter
from casgate.bootstrap import build_content_service
from casgate.config import ConfigError, load_settings
from casgate.errors import CasError, FailureKind

FILE_READ_SIZE = 64 * 1024
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s"

KIND_EXIT_CODES: dict[FailureKind, int] = {
    FailureKind.INVALID_CID: 2,
    FailureKind.NOT_FOUND: 3,
}


def _output_json(data: dict[str, Any]) -> None:
    """Output JSON to stdout with deterministic ordering."""
    print(json.dumps(data, sort_keys=True, indent=2))


def _error_exit_code(exc: CasError) -> int:
    kind = getattr(exc, "kind", None)
    if isinstance(kind, FailureKind):
        return KIND_EXIT_CODES.get(kind, 1)
    return 1


def _iter_file(handle: BinaryIO) -> Iterator[bytes]:
    while True:
        piece = handle.read(FILE_READ_SIZE)
        if not piece:
            return
        yield piece


async def _add(file_path: Path, name: str | None) -> dict[str, Any]:
    service = build_content_service(load_settings())
    try:
        with file_path.open("rb") as handle:
            result = await service.add(_iter_file(handle), path=name or file_path.name)
        return result.to_dict()
    finally:
        await service.store.aclose()


async def _cat(cid: str, out: BinaryIO) -> int:
    service = build_content_service(load_settings())
    try:
        async with service.cat(cid) as stream:
            async for chunk in stream:
                out.write(chunk)
        out.flush()
        return stream.bytes_emitted
    finally:
        await service.store.aclose()


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API under uvicorn."""
    import uvicorn

    from casgate.api.main import create_app

    settings = load_settings()
    app = create_app(settings=settings)
    uvicorn.run(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=args.log_level.lower(),
    )
    return 0


def cmd_add(args: argparse.Namespace) -> int:
    """Add a file and print {path, hash, size}."""
    file_path = Path(args.file)
    if not file_path.is_file():
        print(f"File not found: {file_path}", file=sys.stderr)
        return 1

    try:
        result = asyncio.run(_add(file_path, args.name))
    except CasError as e:
        print(f"Add failed: {e}", file=sys.stderr)
        return _error_exit_code(e)

    _output_json(result)
    return 0


def cmd_cat(args: argparse.Namespace) -> int:
    """Write content for a CID to stdout or a file."""
    try:
        if args.out:
            with open(args.out, "wb") as out:
                asyncio.run(_cat(args.cid, out))
        else:
            asyncio.run(_cat(args.cid, sys.stdout.buffer))
    except CasError as e:
        print(f"Cat failed: {e}", file=sys.stderr)
        return _error_exit_code(e)
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="casgate",
        description="casgate - content-addressed block storage",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: CASGATE_HOST)")
    serve_parser.add_argument("--port", type=int, default=None, help="Listen port (default: PORT)")

    add_parser = subparsers.add_parser("add", help="Add a file and print its CID")
    add_parser.add_argument("file", metavar="FILE", help="Path of the file to add")
    add_parser.add_argument("--name", default=None, help="Name echoed as path (default: file name)")

    cat_parser = subparsers.add_parser("cat", help="Write the content of a CID")
    cat_parser.add_argument("cid", metavar="CID", help="CID, optionally prefixed with /ipfs/")
    cat_parser.add_argument("--out", default=None, metavar="FILE", help="Output file (default: stdout)")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point.

    Exit codes:
        0: Success
        1: Store failure / internal error
        2: Invalid CID or invalid configuration
        3: Content not found
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(RequestIdLogFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=getattr(logging, args.log_level), handlers=[handler])

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "serve":
            return cmd_serve(args)
        if args.command == "add":
            return cmd_add(args)
        if args.command == "cat":
            return cmd_cat(args)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
