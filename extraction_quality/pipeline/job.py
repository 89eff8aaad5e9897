"""
Extraction job state and the result handed back to callers.

An ExtractionJob is created when orchestration starts and discarded once it
reaches a terminal status. Its page results only ever improve: a recovered
text replaces the stored one only when it scores at least as well.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Iterator, Optional

from extraction_quality.models.enums import ExtractionTier, JobStatus
from extraction_quality.schemas.quality import DocumentQualityReport, PageQualityReport

_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.IN_PROGRESS, JobStatus.FAILED},
    JobStatus.IN_PROGRESS: {
        JobStatus.COMPLETED,
        JobStatus.COMPLETED_WITH_FAILURES,
        JobStatus.FAILED,
    },
    JobStatus.COMPLETED: set(),
    JobStatus.COMPLETED_WITH_FAILURES: set(),
    JobStatus.FAILED: set(),
}


class InvalidTransitionError(Exception):
    """Raised when a job is moved to a status its current status cannot reach."""


@dataclass
class PageResult:
    text: str
    report: PageQualityReport
    tier: ExtractionTier = ExtractionTier.TEXT_LAYER


@dataclass
class ExtractionJob:
    document_id: str
    tier_attempted: ExtractionTier = ExtractionTier.TEXT_LAYER
    page_results: dict[int, PageResult] = field(default_factory=dict)
    status: JobStatus = JobStatus.PENDING
    recovered_pages: list[int] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: float = field(default_factory=time.monotonic)

    def transition(self, status: JobStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(f"{self.status.value} -> {status.value}")
        self.status = status

    def escalate(self, tier: ExtractionTier) -> None:
        """Record the highest tier reached; tiers never go back down."""
        order = list(ExtractionTier)
        if order.index(tier) > order.index(self.tier_attempted):
            self.tier_attempted = tier

    def merge(self, page_number: int, text: str, report: PageQualityReport, tier: ExtractionTier) -> bool:
        """
        Keep the recovered text if it scores no worse than what we have.
        Returns True if the stored result was replaced.
        """
        current = self.page_results.get(page_number)
        if current is not None and report.quality_score < current.report.quality_score:
            return False
        self.page_results[page_number] = PageResult(text=text, report=report, tier=tier)
        if current is not None and current.text != text and page_number not in self.recovered_pages:
            self.recovered_pages.append(page_number)
        self.errors.pop(page_number, None)
        return True

    def flag(self, page_number: int, issue: str) -> None:
        """Note a failed recovery on the page without touching its best text."""
        current = self.page_results[page_number]
        report = current.report.model_copy(
            update={
                "issues": [*current.report.issues, issue],
                "needs_vision_fallback": True,
            }
        )
        self.page_results[page_number] = PageResult(text=current.text, report=report, tier=current.tier)
        self.errors[page_number] = issue

    def failing_pages(self) -> list[int]:
        return [n for n in sorted(self.page_results) if self.page_results[n].report.needs_vision_fallback]

    def page_texts(self) -> list[str]:
        return [self.page_results[n].text for n in sorted(self.page_results)]

    def page_reports(self) -> list[PageQualityReport]:
        return [self.page_results[n].report for n in sorted(self.page_results)]

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)


@dataclass
class ExtractionResult:
    """
    Outcome of one orchestration run.

    Unpacks as (page_texts, report, status) for callers that only need the
    essentials.
    """
    page_texts: list[str]
    report: DocumentQualityReport
    status: JobStatus
    initial_report: DocumentQualityReport
    document_id: str
    run_id: str
    tier_attempted: ExtractionTier = ExtractionTier.TEXT_LAYER
    recovered_pages: list[int] = field(default_factory=list)
    errors: dict[int, str] = field(default_factory=dict)
    quality_summary: str = ""
    duration_ms: int = 0
    cost_summary: Optional[dict] = None

    def __iter__(self) -> Iterator:
        return iter((self.page_texts, self.report, self.status))

    @property
    def has_failures(self) -> bool:
        return self.status != JobStatus.COMPLETED or self.report.summary.failed_pages > 0
