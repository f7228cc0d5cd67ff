"""Content routes for the casgate API.

- POST /upload: multipart upload (field "upload") -> {path, hash, size}
- GET /download/{path}: stream content by CID (optional /ipfs/ prefix)

Downloads open the stream before responding, so invalid and unknown CIDs
become JSON errors with a proper status. Failures after the first byte
abort the response; the declared Content-Length lets clients detect the
truncation.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from casgate.api.errors import CasHttpError, http_error_for
from casgate.errors import EgressError, IngestError
from casgate.services.content import ContentService, ContentStream

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Content"])

UPLOAD_READ_SIZE = 64 * 1024


class AddResponse(BaseModel):
    """Response model for POST /upload."""

    path: str
    hash: str
    size: int


def get_content_service(request: Request) -> ContentService:
    """Return the ContentService attached to the app."""
    service = getattr(request.app.state, "content_service", None)
    if service is None:
        raise CasHttpError(503, "SERVICE_UNAVAILABLE", "Content service not configured")
    assert isinstance(service, ContentService)
    return service


async def _iter_upload(upload: UploadFile) -> AsyncIterator[bytes]:
    while True:
        piece = await upload.read(UPLOAD_READ_SIZE)
        if not piece:
            return
        yield piece


async def _iter_download(stream: ContentStream) -> AsyncIterator[bytes]:
    try:
        async for chunk in stream:
            yield chunk
    except EgressError as e:
        logger.warning(
            "Download aborted mid-stream: cid=%s kind=%s emitted=%d",
            e.cid,
            e.kind.value,
            stream.bytes_emitted,
        )
        raise
    finally:
        await stream.aclose()


@router.post("/upload", response_model=AddResponse)
async def upload_content(
    request: Request,
    upload: UploadFile | None = File(default=None),
) -> AddResponse:
    """Store an uploaded file and return its CID.

    Raises:
        CasHttpError: 400 when no file is attached, 413 when over the size
            limit, 502 when the block store is unavailable.
    """
    if upload is None:
        raise CasHttpError(400, "NO_FILE_UPLOADED", "No file uploaded")

    service = get_content_service(request)
    try:
        result = await service.add(_iter_upload(upload), path=upload.filename or None)
    except IngestError as e:
        logger.warning("Upload failed: path=%s kind=%s error=%s", e.path, e.kind.value, e)
        raise http_error_for(e) from e
    finally:
        await upload.close()

    logger.info("Upload stored: path=%s hash=%s size=%d", result.path, result.hash, result.size)
    return AddResponse(**result.to_dict())


@router.get("/download/{content_path:path}")
async def download_content(request: Request, content_path: str) -> StreamingResponse:
    """Stream content addressed by CID.

    Raises:
        CasHttpError: 404 for invalid or unknown CIDs, 502 when the block
            store is unavailable.
    """
    service = get_content_service(request)
    logger.debug("Downloading: path=%s", content_path)

    stream = service.cat(content_path)
    try:
        await stream.open()
    except EgressError as e:
        raise http_error_for(e) from e

    headers = {"X-Content-Cid": str(stream.cid)}
    if stream.size is not None:
        headers["Content-Length"] = str(stream.size)

    return StreamingResponse(
        _iter_download(stream),
        media_type="application/octet-stream",
        headers=headers,
    )
