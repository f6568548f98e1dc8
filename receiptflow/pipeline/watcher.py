"""
Inbox watcher.

A cooperative fixed-rate ticker that scans the inbox directory and hands
each candidate file to the ingestion pipeline. Scans never overlap: a tick
(or a manual trigger) that arrives while a scan is running is skipped.
"""

import asyncio
import logging
import os
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from receiptflow.pipeline.ingestion import IngestionPipeline, IngestOutcome, IngestResult

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


@dataclass
class ScanReport:
    """Summary of one inbox scan."""
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None
    files_found: int = 0
    results: list[IngestResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def counts(self) -> dict[str, int]:
        counter = Counter(result.outcome.value for result in self.results)
        return {outcome.value: counter.get(outcome.value, 0) for outcome in IngestOutcome}

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "skipped": self.skipped,
            "files_found": self.files_found,
            "counts": self.counts,
            "errors": self.errors,
            "documents": [
                {
                    "file": result.path.name,
                    "outcome": result.outcome.value,
                    "document_id": str(result.document.id) if result.document else None,
                    "status": result.document.status.value if result.document else None,
                    "message": result.message,
                }
                for result in self.results
            ],
        }


class FileWatcher:
    """Polls the inbox directory on a fixed interval."""

    def __init__(
        self,
        inbox_path: str | Path,
        pipeline: IngestionPipeline,
        interval_seconds: float = 30.0,
        max_workers: int = 4,
        supported_extensions: list[str] | None = None,
    ):
        self.inbox_path = Path(inbox_path)
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self.max_workers = max_workers
        self.supported_extensions = frozenset(
            ext.lower().lstrip(".") for ext in (supported_extensions or [])
        )
        self._scan_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.last_report: ScanReport | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_scanning(self) -> bool:
        return self._scan_lock.locked()

    def is_inbox_accessible(self) -> bool:
        return self.inbox_path.is_dir() and os.access(self.inbox_path, os.R_OK | os.X_OK)

    async def scan_once(self) -> ScanReport:
        """Scan the inbox once, unless a scan is already running."""
        if self._scan_lock.locked():
            logger.info("Inbox scan already in progress, skipping")
            return ScanReport(skipped=True, finished_at=_utcnow())

        async with self._scan_lock:
            report = await self._scan()
            self.last_report = report
            return report

    async def trigger_scan(self) -> ScanReport:
        """Run a scan on demand (same overlap rules as the ticker)."""
        return await self.scan_once()

    async def _scan(self) -> ScanReport:
        report = ScanReport()

        try:
            files = await asyncio.to_thread(self._list_candidates)
        except OSError as e:
            logger.error(f"Cannot list inbox {self.inbox_path}, skipping this cycle: {e}")
            report.errors.append(str(e))
            report.finished_at = _utcnow()
            return report

        report.files_found = len(files)
        if files:
            logger.info(f"Found {len(files)} file(s) in inbox")

        semaphore = asyncio.Semaphore(self.max_workers)

        async def ingest_with_limit(path: Path) -> IngestResult:
            async with semaphore:
                return await self.pipeline.ingest(path)

        outcomes = await asyncio.gather(
            *[ingest_with_limit(path) for path in files],
            return_exceptions=True,
        )

        for path, outcome in zip(files, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.error(f"Failed to ingest {path.name}: {outcome}", exc_info=outcome)
                report.errors.append(f"{path.name}: {outcome}")
                report.results.append(IngestResult(path, IngestOutcome.ERROR, message=str(outcome)))
            else:
                report.results.append(outcome)

        report.finished_at = _utcnow()
        if files:
            logger.info(f"Inbox scan finished: {report.counts}")
        return report

    def _list_candidates(self) -> list[Path]:
        """Regular, visible, readable, non-empty files with a supported extension."""
        self.inbox_path.mkdir(parents=True, exist_ok=True)
        if not os.access(self.inbox_path, os.R_OK | os.X_OK):
            raise PermissionError(f"Inbox is not readable: {self.inbox_path}")

        candidates = []
        for entry in sorted(self.inbox_path.iterdir()):
            if entry.name.startswith("."):
                continue
            if not entry.is_file():
                continue
            if self.supported_extensions and entry.suffix.lower().lstrip(".") not in self.supported_extensions:
                logger.debug(f"Ignoring unsupported file {entry.name}")
                continue
            if not os.access(entry, os.R_OK):
                logger.warning(f"Ignoring unreadable file {entry.name}")
                continue
            try:
                if entry.stat().st_size == 0:
                    continue
            except OSError:
                continue
            candidates.append(entry)
        return candidates

    async def run(self) -> None:
        """Scan on a fixed-rate schedule until ``stop`` is called."""
        logger.info(
            f"Watching inbox {self.inbox_path} every {self.interval_seconds}s "
            f"with {self.max_workers} worker(s)"
        )
        loop = asyncio.get_running_loop()
        next_tick = loop.time()

        while not self._stop_event.is_set():
            try:
                await self.scan_once()
            except Exception as e:
                logger.exception(f"Inbox scan failed: {e}")

            next_tick += self.interval_seconds
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // self.interval_seconds) + 1
                logger.warning(f"Inbox scan overran the interval, skipping {missed} tick(s)")
                next_tick += missed * self.interval_seconds

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=next_tick - loop.time())
            except asyncio.TimeoutError:
                pass

        logger.info("Inbox watcher stopped")

    def start(self) -> asyncio.Task:
        """Start the ticker as a background task."""
        if self.is_running:
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run(), name="receiptflow-inbox-watcher")
        return self._task

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop the ticker, waiting for an in-flight scan up to ``timeout``."""
        self._stop_event.set()
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Inbox scan did not finish in time, cancelling")
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
