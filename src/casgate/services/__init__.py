"""casgate services: the add/cat content pipeline."""

from casgate.services.content import (
    AddResult,
    ContentService,
    ContentStream,
    StreamState,
    parse_content_path,
)

__all__ = [
    "AddResult",
    "ContentService",
    "ContentStream",
    "StreamState",
    "parse_content_path",
]
