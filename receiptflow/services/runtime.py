"""Wiring of the long-lived components shared by the API and the CLI."""

import logging
from dataclasses import dataclass

from receiptflow.core.config import Settings
from receiptflow.core.storage import StoragePathBuilder
from receiptflow.db.database import Database
from receiptflow.ocr.base import OcrEngine
from receiptflow.ocr.registry import build_engines
from receiptflow.pipeline.ingestion import IngestionPipeline
from receiptflow.pipeline.orchestrator import OcrOrchestrator
from receiptflow.pipeline.watcher import FileWatcher
from receiptflow.services.conversion_service import ConversionService
from receiptflow.services.document_service import DocumentService
from receiptflow.services.record_service import RecordService
from receiptflow.services.upload_service import UploadService

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Components built once per process."""
    settings: Settings
    db: Database
    engines: list[OcrEngine]
    orchestrator: OcrOrchestrator
    pipeline: IngestionPipeline
    watcher: FileWatcher
    conversion: ConversionService
    documents: DocumentService
    records: RecordService
    uploads: UploadService


def build_runtime(
    db: Database,
    settings: Settings,
    engines: list[OcrEngine] | None = None,
) -> Runtime:
    """Build the component graph on top of a connected database."""
    if engines is None:
        engines = build_engines(settings.ocr)

    orchestrator = OcrOrchestrator(db, engines, fallback_enabled=settings.ocr.fallback_enabled)
    storage = StoragePathBuilder(settings.storage.storage_path, settings.storage.max_collisions)
    pipeline = IngestionPipeline(db, orchestrator, storage)
    watcher = FileWatcher(
        settings.storage.inbox_path,
        pipeline,
        interval_seconds=settings.watcher.interval_seconds,
        max_workers=settings.watcher.max_workers,
        supported_extensions=settings.watcher.supported_extensions,
    )

    return Runtime(
        settings=settings,
        db=db,
        engines=engines,
        orchestrator=orchestrator,
        pipeline=pipeline,
        watcher=watcher,
        conversion=ConversionService(db),
        documents=DocumentService(db, orchestrator),
        records=RecordService(db),
        uploads=UploadService(
            pipeline,
            max_bytes=settings.storage.max_upload_bytes,
            supported_extensions=settings.watcher.supported_extensions,
        ),
    )
