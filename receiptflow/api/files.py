"""Serving stored attachments."""

import logging
from pathlib import Path

from fastapi import HTTPException, status
from fastapi.responses import FileResponse

logger = logging.getLogger(__name__)


def stored_file_response(
    stored_path: str | None,
    filename: str | None,
    content_type: str | None,
) -> FileResponse:
    """Stream a stored file inline, or 404 if it is gone."""
    if not stored_path or not Path(stored_path).is_file():
        if stored_path:
            logger.warning(f"Stored file missing on disk: {stored_path}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No stored file",
        )

    return FileResponse(
        stored_path,
        media_type=content_type or "application/octet-stream",
        filename=filename,
        content_disposition_type="inline",
    )
