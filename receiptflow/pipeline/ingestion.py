"""
Ingestion of a single inbox file.

checksum -> duplicate check (serialised per checksum) -> reserve storage path
-> move -> create CREATED document -> OCR. Duplicates stay in the inbox
untouched. The unique index on documents.content_hash backs the per-checksum
lock in case another process ingests the same content.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from receiptflow.core.checksum import ChecksumService
from receiptflow.core.exceptions import DuplicateDocumentError, StateConflictError, StorageError
from receiptflow.core.image_utils import sniff_media_type
from receiptflow.core.locks import KeyedLock
from receiptflow.core.storage import StoragePathBuilder
from receiptflow.db.database import Database
from receiptflow.db.repositories.document_repository import DocumentRepository
from receiptflow.db.repositories.ledger_repository import BillRepository, ReceiptRepository
from receiptflow.models.document import Document
from receiptflow.models.ocr_attempt import EntityRef
from receiptflow.pipeline.orchestrator import OcrOrchestrator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class IngestOutcome(str, Enum):
    """What happened to an inbox file."""
    INGESTED = "ingested"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class IngestResult:
    """Result of ingesting one file."""
    path: Path
    outcome: IngestOutcome
    document: Document | None = None
    content_hash: str | None = None
    existing: EntityRef | None = None
    message: str | None = None


class IngestionPipeline:
    """Turns inbox files into OCR'd documents."""

    def __init__(
        self,
        db: Database,
        orchestrator: OcrOrchestrator,
        storage: StoragePathBuilder,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.storage = storage
        self.documents = DocumentRepository(db)
        self.bills = BillRepository(db)
        self.receipts = ReceiptRepository(db)
        self._hash_locks = KeyedLock()

    async def ingest(self, path: str | Path) -> IngestResult:
        """Ingest one file from the inbox.

        I/O problems are reported as ERROR results; the file stays in the
        inbox and is picked up again by the next scan.
        """
        path = Path(path)

        try:
            file_bytes = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            logger.warning(f"Cannot read {path.name}, will retry on next scan: {e}")
            return IngestResult(path, IngestOutcome.ERROR, message=str(e))

        if not file_bytes:
            logger.info(f"Skipping empty file {path.name}")
            return IngestResult(path, IngestOutcome.SKIPPED, message="empty file")

        content_hash = ChecksumService.compute(file_bytes)

        async with self._hash_locks.hold(content_hash):
            existing = await self.find_existing(content_hash)
            if existing is not None:
                logger.info(f"Duplicate file {path.name} (matches {existing}), leaving it in the inbox")
                return IngestResult(
                    path, IngestOutcome.DUPLICATE, content_hash=content_hash, existing=existing
                )

            upload_timestamp = _utcnow()
            try:
                destination = await asyncio.to_thread(
                    self.storage.build_path, upload_timestamp, path.name
                )
                stored_path = await asyncio.to_thread(
                    self.storage.move_into_storage, path, destination
                )
            except StorageError as e:
                logger.error(f"Could not store {path.name}: {e.message}")
                return IngestResult(path, IngestOutcome.ERROR, content_hash=content_hash, message=e.message)

            document = Document(
                filename=path.name,
                stored_path=str(stored_path),
                content_type=sniff_media_type(file_bytes[:16], path.name),
                file_size=len(file_bytes),
                content_hash=content_hash,
                upload_timestamp=upload_timestamp,
            )

            try:
                document = await self.documents.create(document)
            except DuplicateDocumentError:
                await asyncio.to_thread(self._restore, stored_path, path)
                logger.info(f"Duplicate file {path.name} detected at insert, returned it to the inbox")
                return IngestResult(path, IngestOutcome.DUPLICATE, content_hash=content_hash)
            except BaseException:
                await asyncio.to_thread(self._restore, stored_path, path)
                raise

        logger.info(f"Created document {document.id} for {path.name}")

        try:
            document = await self.orchestrator.process(document)
        except StateConflictError:
            # Picked up by the pending-document sweep in the meantime
            document = await self.documents.require(document.id)

        return IngestResult(path, IngestOutcome.INGESTED, document=document, content_hash=content_hash)

    async def find_existing(self, content_hash: str) -> EntityRef | None:
        """Look for a document, bill or receipt with this content hash."""
        doc = await self.documents.get_by_hash(content_hash)
        if doc is not None:
            return EntityRef.document(doc.id)
        bill = await self.bills.get_by_hash(content_hash)
        if bill is not None:
            return EntityRef.bill(bill.id)
        receipt = await self.receipts.get_by_hash(content_hash)
        if receipt is not None:
            return EntityRef.receipt(receipt.id)
        return None

    def _restore(self, stored_path: Path, inbox_path: Path) -> None:
        try:
            shutil.move(str(stored_path), str(inbox_path))
        except OSError as e:
            logger.error(f"Could not move {stored_path} back to {inbox_path}: {e}")
