"""
Collaborator interfaces for text-layer extraction and recovery engines,
and the error taxonomy recovery engines raise.
"""

from abc import ABC, abstractmethod
from typing import Any


class RecoveryError(Exception):
    """Raised when a recovery engine call fails."""

    def __init__(self, engine_name: str, error_code: str, message: str):
        self.engine_name = engine_name
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{engine_name}] {error_code}: {message}")


class TransientRecoveryError(RecoveryError):
    """Timeouts, 5xx, rate limits, network blips. Retried with backoff."""


class PermanentRecoveryError(RecoveryError):
    """Malformed input, page out of range, unreadable document. Never retried."""


class ConfigurationError(RecoveryError):
    """Engine missing, misconfigured or unreachable."""


class TextLayerEngine(ABC):
    """
    Tier 1: text embedded in the document.

    Implementations must never raise for unreadable pages; an unreadable page
    is an empty string and an unreadable file is an empty list. The quality
    analyzer already treats empty text as a detectable issue.
    """

    @property
    @abstractmethod
    def engine_name(self) -> str:
        ...

    @abstractmethod
    def extract_page_texts(self, document_ref: Any) -> list[str]:
        """Per-page text, ordered by page."""
        ...


class RecoveryEngine(ABC):
    """
    Tiers 2 and 3: image-based recognition.

    Every engine must:
    1. Accept an opaque document reference (path, storage key, ...)
    2. Return plain text per page
    3. Raise a RecoveryError subclass on failure so the orchestrator can
       decide whether to retry
    """

    @property
    @abstractmethod
    def engine_name(self) -> str:
        """Unique identifier: 'tesseract', 'stub', ..."""
        ...

    @property
    @abstractmethod
    def engine_version(self) -> str:
        ...

    @property
    def cost_per_page_usd(self) -> float:
        """Estimated external cost of recognising one page."""
        return 0.0

    @abstractmethod
    async def recognize_page(self, document_ref: Any, page_number: int) -> str:
        """Re-derive the text of a single 1-indexed page."""
        ...

    @abstractmethod
    async def recognize_document(self, document_ref: Any) -> list[str]:
        """Re-derive the text of every page, ordered by page."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify engine is available and responding."""
        ...
