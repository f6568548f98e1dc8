"""
OCR orchestration for a single document.

Takes a CREATED document, runs it through the first available OCR engine
and persists the outcome as PROCESSED or FAILED together with one attempt
record per engine call. The document is never left in CREATED on return.
"""

import asyncio
import json
import logging
from pathlib import Path

from receiptflow.core.exceptions import StateConflictError
from receiptflow.core.locks import KeyedLock
from receiptflow.db.database import Database
from receiptflow.db.repositories.document_repository import DocumentRepository
from receiptflow.db.repositories.ocr_attempt_repository import OcrAttemptRepository
from receiptflow.models.document import Document, DocumentStatus
from receiptflow.models.ocr_attempt import EntityType, OcrAttempt, OcrAttemptStatus
from receiptflow.ocr.base import OcrEngine, OcrFailure, OcrResult, OcrSuccess
from receiptflow.ocr.registry import first_available
from receiptflow.pipeline import state_machine

logger = logging.getLogger(__name__)

NO_ENGINE_REASON = "no OCR engine configured"


class OcrOrchestrator:
    """Runs OCR for documents and records every attempt."""

    def __init__(
        self,
        db: Database,
        engines: list[OcrEngine],
        fallback_enabled: bool = False,
        locks: KeyedLock | None = None,
    ):
        self.db = db
        self.engines = engines
        self.fallback_enabled = fallback_enabled
        self.documents = DocumentRepository(db)
        self.attempts = OcrAttemptRepository(db)
        self.locks = locks or KeyedLock()

    def available_engines(self) -> list[OcrEngine]:
        return [engine for engine in self.engines if engine.is_available()]

    def available_engine_names(self) -> list[str]:
        return [engine.name for engine in self.available_engines()]

    def has_available_engines(self) -> bool:
        return any(engine.is_available() for engine in self.engines)

    async def process(self, document: Document) -> Document:
        """OCR a CREATED document and return it as PROCESSED or FAILED.

        Raises:
            DocumentNotFoundError: If the document no longer exists
            StateConflictError: If the document is not in CREATED
        """
        async with self.locks.hold(document.id):
            current = await self.documents.require(document.id)
            if current.status != DocumentStatus.CREATED:
                raise StateConflictError(current.status.name, "process", str(current.id))

            engines = self._select_engines()
            if not engines:
                logger.warning(f"Document {current.id} failed: {NO_ENGINE_REASON}")
                return await self._persist(current, state_machine.fail_ocr(current, NO_ENGINE_REASON))

            try:
                file_bytes = await asyncio.to_thread(Path(current.stored_path).read_bytes)
            except OSError as e:
                reason = f"Stored file unreadable: {e}"
                logger.error(f"Document {current.id} failed: {reason}")
                return await self._persist(current, state_machine.fail_ocr(current, reason))

            result: OcrResult = OcrFailure(NO_ENGINE_REASON)
            for index, engine in enumerate(engines):
                result = await self._run_engine(engine, current, file_bytes)
                if isinstance(result, OcrSuccess):
                    break
                if index < len(engines) - 1:
                    logger.info(
                        f"{engine.name} failed for document {current.id}, "
                        f"falling back to {engines[index + 1].name}"
                    )

            if isinstance(result, OcrSuccess):
                updated = state_machine.complete_ocr(current, result.extracted)
            else:
                updated = state_machine.fail_ocr(current, result.message)

            saved = await self._persist(current, updated)
            logger.info(f"Document {saved.id} ({saved.filename}) is now {saved.status.name}")
            return saved

    async def process_pending(self) -> list[Document]:
        """Process documents left in CREATED, e.g. after a crash mid-ingestion."""
        pending = await self.documents.get_documents(status=DocumentStatus.CREATED, limit=1000)
        if pending:
            logger.info(f"Processing {len(pending)} pending document(s)")

        results = []
        for doc in pending:
            try:
                results.append(await self.process(doc))
            except StateConflictError:
                logger.info(f"Document {doc.id} was processed concurrently, skipping")
        return results

    def _select_engines(self) -> list[OcrEngine]:
        if self.fallback_enabled:
            return self.available_engines()
        engine = first_available(self.engines)
        return [engine] if engine else []

    async def _run_engine(self, engine: OcrEngine, doc: Document, file_bytes: bytes) -> OcrResult:
        """Call one engine and record the attempt before returning."""
        try:
            result = await engine.extract(file_bytes, doc.filename)
        except Exception as e:
            logger.exception(f"OCR engine {engine.name} raised for document {doc.id}: {e}")
            result = OcrFailure(f"{engine.name} raised {type(e).__name__}: {e}")

        if isinstance(result, OcrSuccess):
            attempt = OcrAttempt(
                entity_type=EntityType.DOCUMENT,
                entity_id=doc.id,
                engine_used=engine.name,
                status=OcrAttemptStatus.SUCCESS,
                extracted_data_json=json.dumps(result.extracted.to_json_dict()),
                raw_response=result.raw_response,
                processing_duration_ms=result.processing_duration_ms,
            )
        else:
            logger.warning(f"OCR with {engine.name} failed for document {doc.id}: {result.message}")
            attempt = OcrAttempt(
                entity_type=EntityType.DOCUMENT,
                entity_id=doc.id,
                engine_used=engine.name,
                status=OcrAttemptStatus.FAILED,
                error_message=result.message,
                raw_response=result.raw_response,
                processing_duration_ms=result.processing_duration_ms,
            )

        await self.attempts.record(attempt)
        return result

    async def _persist(self, current: Document, updated: Document) -> Document:
        action = "complete_ocr" if updated.status == DocumentStatus.PROCESSED else "fail_ocr"
        return await self.documents.save_transition(updated, current.status, action)
