"""
Uploads through the API.

An uploaded file is checked (size, extension, leading magic bytes), staged
in a private temporary directory under its sanitised name and handed to the
same IngestionPipeline the inbox watcher uses, so dedup, storage naming and
OCR behave exactly as for scanned files.
"""

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path

from receiptflow.core.exceptions import DuplicateDocumentError, StorageError, UploadRejectedError
from receiptflow.models.document import Document
from receiptflow.pipeline.ingestion import IngestionPipeline, IngestOutcome

logger = logging.getLogger(__name__)

# Leading bytes an upload must start with, per extension
FILE_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "pdf": (b"%PDF",),
    "jpg": (b"\xff\xd8\xff",),
    "jpeg": (b"\xff\xd8\xff",),
    "png": (b"\x89PNG\r\n\x1a\n",),
    "gif": (b"GIF87a", b"GIF89a"),
    "bmp": (b"BM",),
    "tif": (b"II*\x00", b"MM\x00*"),
    "tiff": (b"II*\x00", b"MM\x00*"),
}


def sanitize_filename(filename: str) -> str:
    """Reduce a client-supplied name to a safe basename."""
    name = os.path.basename(filename.replace("\\", "/")).replace("\x00", "")
    name = re.sub(r"[^\w.\-\s]", "_", name).strip()
    if name.startswith("."):
        name = "_" + name[1:]
    return name


class UploadService:
    """Validates uploads and feeds them to the ingestion pipeline."""

    def __init__(
        self,
        pipeline: IngestionPipeline,
        max_bytes: int,
        supported_extensions: list[str],
    ):
        self.pipeline = pipeline
        self.max_bytes = max_bytes
        self.supported_extensions = [ext.lower() for ext in supported_extensions]

    def validate(self, filename: str | None, content: bytes) -> str:
        """Check an upload and return the name it will be stored under.

        Raises:
            UploadRejectedError: With code EMPTY_FILE, FILE_TOO_LARGE,
                UNSUPPORTED_FILE_TYPE or CONTENT_MISMATCH
        """
        if not content:
            raise UploadRejectedError("File cannot be empty", "EMPTY_FILE")

        if len(content) > self.max_bytes:
            raise UploadRejectedError(
                f"File size exceeds maximum limit of {self.max_bytes} bytes",
                "FILE_TOO_LARGE",
                {"max_size": self.max_bytes, "actual_size": len(content)},
            )

        name = sanitize_filename(filename or "")
        extension = Path(name).suffix.lower().lstrip(".")
        if not extension or extension not in self.supported_extensions:
            raise UploadRejectedError(
                f"Unsupported file type. Supported types: {', '.join(self.supported_extensions)}",
                "UNSUPPORTED_FILE_TYPE",
                {"supported_types": self.supported_extensions, "actual_type": extension},
            )

        signatures = FILE_SIGNATURES.get(extension)
        if signatures and not content.startswith(signatures):
            raise UploadRejectedError(
                f"File content does not match the .{extension} extension",
                "CONTENT_MISMATCH",
                {"extension": extension},
            )

        return name

    async def upload(self, filename: str | None, content: bytes) -> Document:
        """Validate, ingest and OCR an uploaded file.

        Raises:
            UploadRejectedError: If validation fails
            DuplicateDocumentError: If the content is already known
            StorageError: If the file could not be staged or stored
        """
        name = self.validate(filename, content)

        with tempfile.TemporaryDirectory(prefix="receiptflow-upload-") as staging:
            path = Path(staging) / name
            try:
                await asyncio.to_thread(path.write_bytes, content)
            except OSError as e:
                raise StorageError(f"Cannot stage upload {name}: {e}") from e

            result = await self.pipeline.ingest(path)

        if result.outcome == IngestOutcome.DUPLICATE:
            logger.info(f"Rejected duplicate upload {name} ({result.existing})")
            raise DuplicateDocumentError(result.content_hash)
        if result.outcome != IngestOutcome.INGESTED:
            raise StorageError(
                f"Upload {name} could not be ingested: {result.message}",
                {"outcome": result.outcome.value},
            )

        logger.info(f"Uploaded {name} as document {result.document.id}")
        return result.document
