"""
Base classes for vision OCR engines.

Every engine call is total: ``extract`` returns an ``OcrSuccess`` or an
``OcrFailure`` and never raises for provider, network or parsing problems.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from receiptflow.models.extracted import ExtractedData


@dataclass(frozen=True)
class OcrSuccess:
    """Fields extracted by a provider."""
    extracted: ExtractedData
    raw_response: str | None = None
    processing_duration_ms: int = 0

    @property
    def success(self) -> bool:
        return True


@dataclass(frozen=True)
class OcrFailure:
    """A provider call that produced no usable extraction."""
    message: str
    raw_response: str | None = None
    processing_duration_ms: int = 0

    @property
    def success(self) -> bool:
        return False


OcrResult = OcrSuccess | OcrFailure


class OcrEngine(ABC):
    """Interface implemented by every OCR provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Stable identifier stored with each attempt (e.g. ``openai``)."""
        pass

    @property
    def display_name(self) -> str:
        return self.name

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the engine is configured well enough to be called."""
        pass

    @abstractmethod
    async def extract(self, file_bytes: bytes, filename: str | None = None) -> OcrResult:
        """Extract provider, amount, date and currency from a scan."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, available={self.is_available()})"
