"""Pytest configuration and fixtures."""

import asyncio
import io
import os
from datetime import date
from decimal import Decimal
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio

from receiptflow.core.checksum import ChecksumService
from receiptflow.models.document import Document, DocumentStatus
from receiptflow.models.extracted import ExtractedData
from receiptflow.ocr.base import OcrEngine, OcrSuccess

# Keep a developer's settings.yaml out of the tests
os.environ["RECEIPTFLOW_CONFIG_DIR"] = ""

ACME = ExtractedData(
    provider="Acme",
    amount=Decimal("42.50"),
    document_date=date(2024, 3, 1),
    currency="USD",
)


class FakeOcrEngine(OcrEngine):
    """Scripted engine: returns queued results in order, then ACME successes."""

    def __init__(self, name: str = "fake", results=None, available: bool = True, delay: float = 0.0):
        self._name = name
        self.results = list(results or [])
        self.available = available
        self.delay = delay
        self.calls: list[str | None] = []

    @property
    def name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self.available

    async def extract(self, file_bytes: bytes, filename: str | None = None):
        self.calls.append(filename)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.results.pop(0) if self.results else OcrSuccess(
            ACME, '{"provider": "Acme", "amount": 42.50, "date": "2024-03-01", "currency": "USD"}', 12
        )
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Per-test directory for the database, inbox and attachments."""
    return tmp_path


@pytest.fixture
def test_settings(temp_dir: Path):
    """Create test settings."""
    from receiptflow.core.config import (
        DatabaseSettings,
        OCRSettings,
        ProviderSettings,
        ServerSettings,
        Settings,
        StorageSettings,
        WatcherSettings,
    )

    return Settings(
        server=ServerSettings(
            host="127.0.0.1",
            port=8000,
            debug=True,
            cors_origins=["*"],
        ),
        storage=StorageSettings(
            inbox_path=str(temp_dir / "inbox"),
            storage_path=str(temp_dir / "attachments"),
        ),
        watcher=WatcherSettings(
            enabled=False,
            interval_seconds=0.05,
            max_workers=2,
            process_pending_on_start=False,
        ),
        ocr=OCRSettings(
            providers=["openai", "claude", "google"],
            timeout_seconds=5,
            max_retries=2,
            openai=ProviderSettings(
                api_key="sk-test-key",
                model="gpt-4o",
                base_url="https://api.openai.com/v1",
                placeholder="openaiApiKey",
            ),
        ),
        database=DatabaseSettings(
            path=str(temp_dir / "test.db"),
        ),
    )


@pytest.fixture
def mock_settings(test_settings, monkeypatch):
    """Mock the global settings."""
    from receiptflow.core import config

    monkeypatch.setattr(config, "_settings", test_settings)
    return test_settings


@pytest_asyncio.fixture
async def test_db(temp_dir: Path):
    """Create a test database."""
    from receiptflow.db.database import Database

    db = Database(str(temp_dir / "test.db"))
    await db.connect()
    await db.init_schema()

    yield db

    await db.disconnect()


@pytest.fixture
def inbox(temp_dir: Path) -> Path:
    path = temp_dir / "inbox"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def storage_dir(temp_dir: Path) -> Path:
    return temp_dir / "attachments"


@pytest.fixture
def fake_engine() -> FakeOcrEngine:
    return FakeOcrEngine()


@pytest.fixture
def runtime(test_db, test_settings, fake_engine):
    """Component graph wired to the test database and the fake engine."""
    from receiptflow.services.runtime import build_runtime

    return build_runtime(test_db, test_settings, engines=[fake_engine])


@pytest.fixture
def make_document(test_db, storage_dir: Path):
    """Factory storing a file and inserting a document row for it."""
    from receiptflow.db.repositories.document_repository import DocumentRepository

    repo = DocumentRepository(test_db)

    async def _make(
        status: DocumentStatus = DocumentStatus.CREATED,
        content: bytes | None = None,
        filename: str = "scan.png",
        extracted: ExtractedData | None = None,
        failure_reason: str | None = None,
    ) -> Document:
        content = content or uuid4().bytes * 4
        storage_dir.mkdir(parents=True, exist_ok=True)
        path = storage_dir / f"{uuid4().hex[:8]}-{filename}"
        path.write_bytes(content)
        doc = Document(
            filename=filename,
            stored_path=str(path),
            content_type="image/png",
            file_size=len(content),
            content_hash=ChecksumService.compute(content),
            status=status,
            extracted=extracted or ExtractedData(),
            failure_reason=failure_reason,
        )
        return await repo.create(doc)

    return _make


@pytest.fixture
def sample_image() -> bytes:
    """Create a sample receipt-like PNG."""
    from PIL import Image, ImageDraw

    img = Image.new("RGB", (400, 600), color="white")
    draw = ImageDraw.Draw(img)
    draw.rectangle([20, 20, 380, 580], outline="black", width=2)
    draw.text((40, 40), "ACME STORE", fill="black")
    draw.text((40, 80), "2024-03-01", fill="black")
    draw.text((40, 500), "TOTAL USD 42.50", fill="black")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def sample_pdf() -> bytes:
    """Minimal PDF header bytes; enough for media type sniffing."""
    return b"%PDF-1.4 test pdf content"
