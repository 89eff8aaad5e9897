"""
Application configuration using pydantic-settings.
All settings read from environment variables with sensible defaults.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Central configuration for extraction quality assessment and recovery."""

    # ── Application ──────────────────────────────────────────
    APP_NAME: str = "extraction-quality"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # ── Page Quality Thresholds ──────────────────────────────
    QUALITY_MIN_CHAR_COUNT: int = 50
    QUALITY_SHORT_TEXT_MAX_PENALTY: int = 45
    QUALITY_SPECIAL_CHAR_CUTOFF: float = 0.5
    QUALITY_SPECIAL_CHAR_WARNING: float = 0.3
    QUALITY_SINGLE_CHAR_WORD_CUTOFF: float = 0.3
    QUALITY_SINGLE_CHAR_WORD_WARNING: float = 0.15
    QUALITY_SUSPICIOUS_SCORE_CAP: int = 79
    QUALITY_LOW_SCORE_CUTOFF: int = 61
    QUALITY_LOW_CHAR_COUNT: int = 100
    QUALITY_MIN_CHARS_PER_LINE: int = 10
    QUALITY_MIN_AVG_WORD_LENGTH: float = 3.0
    QUALITY_VOCABULARY_MIN_WORDS: int = 50
    QUALITY_UNIQUE_WORD_HIGH: float = 0.95
    QUALITY_UNIQUE_WORD_LOW: float = 0.2

    # ── Document Thresholds ──────────────────────────────────
    QUALITY_OCR_SCORE_CUTOFF: int = 40
    QUALITY_MIN_DOCUMENT_CHARS: int = 100
    QUALITY_SPARSE_PAGE_CHARS: int = 50

    # ── Recovery Tiers ───────────────────────────────────────
    RECOVERY_MAX_CONCURRENCY: int = 3
    RECOVERY_MAX_ATTEMPTS: int = 3
    RECOVERY_BACKOFF_BASE_SECONDS: float = 0.5
    RECOVERY_BACKOFF_MAX_SECONDS: float = 8.0
    RECOVERY_CALL_TIMEOUT_SECONDS: float = 120.0
    RECOVERY_DEADLINE_SECONDS: Optional[float] = None
    # 0 = no cap on pages sent to vision recovery per document
    RECOVERY_MAX_VISION_PAGES: int = 0
    RECOVERY_ESCALATE_TO_FULL_OCR: bool = False

    # ── OCR Engine ───────────────────────────────────────────
    OCR_TESSERACT_CMD: str = "tesseract"
    OCR_LANG: str = "eng"
    OCR_PSM: int = 3
    OCR_RENDER_DPI: int = 300
    OCR_TIMEOUT_SECONDS: int = 90
    POPPLER_PATH: Optional[str] = None

    # ── Cost Estimates ───────────────────────────────────────
    VISION_COST_PER_PAGE_USD: float = 0.0025
    OCR_COST_PER_PAGE_USD: float = 0.0015

    # ── Storage ──────────────────────────────────────────────
    ARTIFACT_ROOT: str = "/data/artifacts"
    REPORT_STORE_MAX_ENTRIES: int = 256

    # ── Observability ────────────────────────────────────────
    PROMETHEUS_ENABLED: bool = True

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
    }


# Singleton instance
settings = Settings()
