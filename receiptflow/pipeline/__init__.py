"""Document pipeline: state machine, OCR orchestration, ingestion and the inbox watcher."""

from receiptflow.pipeline.ingestion import IngestionPipeline, IngestOutcome, IngestResult
from receiptflow.pipeline.orchestrator import NO_ENGINE_REASON, OcrOrchestrator
from receiptflow.pipeline.watcher import FileWatcher, ScanReport

__all__ = [
    "IngestionPipeline",
    "IngestOutcome",
    "IngestResult",
    "NO_ENGINE_REASON",
    "OcrOrchestrator",
    "FileWatcher",
    "ScanReport",
]
