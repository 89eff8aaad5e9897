"""
Quality report contracts.

PageQualityReport and DocumentQualityReport are created fresh for every
analysis pass and never mutated. Callers diff two reports to see whether a
recovery tier improved a document.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from extraction_quality.config import Settings, settings as default_settings
from extraction_quality.models.enums import ExtractionMethod, ExtractionTier, JobStatus


class QualityThresholds(BaseModel):
    """Tunable policy for page and document scoring."""
    min_char_count: int = Field(default=50, ge=1)
    short_text_max_penalty: int = Field(default=45, ge=0, le=100)
    special_char_cutoff: float = Field(default=0.5, ge=0.0, le=1.0)
    special_char_warning: float = Field(default=0.3, ge=0.0, le=1.0)
    single_char_word_cutoff: float = Field(default=0.3, ge=0.0, le=1.0)
    single_char_word_warning: float = Field(default=0.15, ge=0.0, le=1.0)
    suspicious_score_cap: int = Field(default=79, ge=0, le=100)
    low_score_cutoff: int = Field(default=61, ge=0, le=100)
    low_char_count: int = Field(default=100, ge=1)
    min_chars_per_line: int = Field(default=10, ge=0)
    min_avg_word_length: float = Field(default=3.0, ge=0.0)
    vocabulary_min_words: int = Field(default=50, ge=1)
    unique_word_high: float = Field(default=0.95, ge=0.0, le=1.0)
    unique_word_low: float = Field(default=0.2, ge=0.0, le=1.0)
    ocr_score_cutoff: int = Field(default=40, ge=0, le=100)
    min_document_chars: int = Field(default=100, ge=0)
    sparse_page_chars: int = Field(default=50, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def from_settings(cls, cfg: Settings | None = None) -> "QualityThresholds":
        cfg = cfg or default_settings
        return cls(
            min_char_count=cfg.QUALITY_MIN_CHAR_COUNT,
            short_text_max_penalty=cfg.QUALITY_SHORT_TEXT_MAX_PENALTY,
            special_char_cutoff=cfg.QUALITY_SPECIAL_CHAR_CUTOFF,
            special_char_warning=cfg.QUALITY_SPECIAL_CHAR_WARNING,
            single_char_word_cutoff=cfg.QUALITY_SINGLE_CHAR_WORD_CUTOFF,
            single_char_word_warning=cfg.QUALITY_SINGLE_CHAR_WORD_WARNING,
            suspicious_score_cap=cfg.QUALITY_SUSPICIOUS_SCORE_CAP,
            low_score_cutoff=cfg.QUALITY_LOW_SCORE_CUTOFF,
            low_char_count=cfg.QUALITY_LOW_CHAR_COUNT,
            min_chars_per_line=cfg.QUALITY_MIN_CHARS_PER_LINE,
            min_avg_word_length=cfg.QUALITY_MIN_AVG_WORD_LENGTH,
            vocabulary_min_words=cfg.QUALITY_VOCABULARY_MIN_WORDS,
            unique_word_high=cfg.QUALITY_UNIQUE_WORD_HIGH,
            unique_word_low=cfg.QUALITY_UNIQUE_WORD_LOW,
            ocr_score_cutoff=cfg.QUALITY_OCR_SCORE_CUTOFF,
            min_document_chars=cfg.QUALITY_MIN_DOCUMENT_CHARS,
            sparse_page_chars=cfg.QUALITY_SPARSE_PAGE_CHARS,
        )


class PageQualityReport(BaseModel):
    """Quality verdict for one page of extracted text."""
    page_number: int = Field(ge=1)
    char_count: int = Field(ge=0)
    word_count: int = Field(ge=0, default=0)
    line_count: int = Field(ge=0, default=0)
    special_char_ratio: float = Field(ge=0.0, le=1.0, default=0.0)
    single_char_word_ratio: float = Field(ge=0.0, le=1.0, default=0.0)
    quality_score: int = Field(ge=0, le=100)
    issues: list[str] = []
    needs_vision_fallback: bool

    model_config = {"frozen": True}


class QualitySummary(BaseModel):
    successful_pages: int = Field(ge=0)
    failed_pages: int = Field(ge=0)
    # Pages scoring between 31 and the fallback cutoff: degraded, not unusable
    poor_quality_pages: int = Field(ge=0, default=0)

    model_config = {"frozen": True}


class DocumentQualityReport(BaseModel):
    """
    Document-level aggregate of page reports.

    Invariants:
    - len(page_reports) == total_pages, ordered by page_number
    - summary.successful_pages + summary.failed_pages == total_pages
    """
    total_pages: int = Field(ge=0)
    page_reports: list[PageQualityReport]
    overall_score: int = Field(ge=0, le=100)
    extraction_method: ExtractionMethod
    summary: QualitySummary

    model_config = {"frozen": True}

    @property
    def problematic_pages(self) -> list[int]:
        return sorted(r.page_number for r in self.page_reports if r.needs_vision_fallback)

    def page(self, page_number: int) -> PageQualityReport:
        """Report for a 1-indexed page number."""
        return self.page_reports[page_number - 1]


class ExtractionRecord(BaseModel):
    """What the report store keeps for one orchestration run."""
    document_id: str
    run_id: str
    status: JobStatus
    tier_attempted: ExtractionTier
    initial_report: DocumentQualityReport
    final_report: DocumentQualityReport
    recovered_pages: list[int] = []
    duration_ms: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}
