"""
Enums shared by reports, jobs and engines.
Values are the strings callers compare against and serialise.
"""

from enum import Enum


class ExtractionMethod(str, Enum):
    """Recommended strategy for a document as a whole."""
    PDFJS = "pdfjs"      # text layer is usable as-is
    HYBRID = "hybrid"    # targeted per-page recovery
    OCR = "ocr"          # full-document re-extraction


class ExtractionTier(str, Enum):
    TEXT_LAYER = "text_layer"
    VISION_OCR = "vision_ocr"
    FULL_OCR = "full_ocr"


class JobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    COMPLETED_WITH_FAILURES = "completed_with_failures"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            JobStatus.COMPLETED,
            JobStatus.COMPLETED_WITH_FAILURES,
            JobStatus.FAILED,
        )


class RecoveryOutcome(str, Enum):
    """Result of a single recovery call, used for logs and metrics labels."""
    IMPROVED = "improved"
    NOT_IMPROVED = "not_improved"
    TRANSIENT_EXHAUSTED = "transient_exhausted"
    PERMANENT = "permanent"
    UNREACHABLE = "unreachable"
    TIMED_OUT = "timed_out"
    SKIPPED = "skipped"
