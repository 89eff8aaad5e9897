"""
Document-level quality aggregation and the reporting helpers callers use to
decide what to do next (nothing, targeted vision recovery, or full OCR).
"""

from typing import Iterable, Optional

from extraction_quality.models.enums import ExtractionMethod
from extraction_quality.pipeline.page_analyzer import analyze_page_quality, default_thresholds
from extraction_quality.schemas.quality import (
    DocumentQualityReport,
    PageQualityReport,
    QualitySummary,
    QualityThresholds,
)

# Below this a failed page has nothing worth keeping
POOR_QUALITY_MIN_SCORE = 31

# Characters per page that count as a fully populated text layer
FULL_PAGE_CHARS = 500


def _round_half_up_mean(values: list[int]) -> int:
    if not values:
        return 0
    n = len(values)
    return (2 * sum(values) + n) // (2 * n)


def recommend_extraction_method(
    total_pages: int,
    failed_pages: int,
    overall_score: int,
    thresholds: QualityThresholds,
) -> ExtractionMethod:
    """
    pdfjs  - every page passed as-is
    ocr    - nothing usable, or so little that page-by-page triage costs more
    hybrid - some pages fine, some need targeted recovery
    """
    if total_pages == 0 or failed_pages == total_pages:
        return ExtractionMethod.OCR
    if overall_score < thresholds.ocr_score_cutoff:
        return ExtractionMethod.OCR
    if failed_pages == 0:
        return ExtractionMethod.PDFJS
    return ExtractionMethod.HYBRID


def aggregate_page_reports(
    page_reports: Iterable[PageQualityReport],
    thresholds: Optional[QualityThresholds] = None,
) -> DocumentQualityReport:
    """Combine per-page reports into a document report, ordered by page number."""
    t = thresholds or default_thresholds()
    reports = sorted(page_reports, key=lambda r: r.page_number)

    total_pages = len(reports)
    successful = sum(1 for r in reports if not r.needs_vision_fallback)
    failed = total_pages - successful
    poor = sum(1 for r in reports if POOR_QUALITY_MIN_SCORE <= r.quality_score < t.low_score_cutoff)
    overall = _round_half_up_mean([r.quality_score for r in reports])

    return DocumentQualityReport(
        total_pages=total_pages,
        page_reports=reports,
        overall_score=overall,
        extraction_method=recommend_extraction_method(total_pages, failed, overall, t),
        summary=QualitySummary(
            successful_pages=successful,
            failed_pages=failed,
            poor_quality_pages=poor,
        ),
    )


def analyze_document_quality(
    pages: list[str],
    thresholds: Optional[QualityThresholds] = None,
) -> DocumentQualityReport:
    """Analyze every page (page number = index + 1) and aggregate."""
    t = thresholds or default_thresholds()
    reports = [analyze_page_quality(text, i + 1, t) for i, text in enumerate(pages)]
    return aggregate_page_reports(reports, t)


# ─── Reporting Helpers ────────────────────────────────────────

def identify_problematic_pages(report: DocumentQualityReport) -> list[int]:
    """Page numbers needing recovery, ascending."""
    return report.problematic_pages


def text_density(report: DocumentQualityReport) -> float:
    """Average characters per page as a fraction of a fully populated page."""
    if not report.total_pages:
        return 0.0
    total_chars = sum(r.char_count for r in report.page_reports)
    return total_chars / report.total_pages / FULL_PAGE_CHARS


def text_layer_too_sparse(
    report: DocumentQualityReport,
    thresholds: Optional[QualityThresholds] = None,
) -> bool:
    """
    True when the text layer holds so little text that the document is
    probably scanned, even if the few characters it has score well.
    """
    t = thresholds or default_thresholds()
    total_chars = sum(r.char_count for r in report.page_reports)
    if total_chars < t.min_document_chars:
        return True
    return text_density(report) < t.sparse_page_chars / FULL_PAGE_CHARS


def needs_full_ocr(
    report: DocumentQualityReport,
    thresholds: Optional[QualityThresholds] = None,
) -> bool:
    if report.extraction_method == ExtractionMethod.OCR:
        return True
    return text_layer_too_sparse(report, thresholds)


def needs_vision_fallback(report: DocumentQualityReport) -> bool:
    """True only for targeted per-page recovery; full OCR is signalled separately."""
    return report.extraction_method == ExtractionMethod.HYBRID


def generate_quality_summary(report: DocumentQualityReport) -> str:
    """One-line human readable status for a document report."""
    parts = [
        f"{report.summary.successful_pages} of {report.total_pages} pages extracted successfully.",
        f"Overall quality: {report.overall_score}/100.",
    ]
    problematic = report.problematic_pages
    if problematic:
        parts.append(f"Problematic pages: {', '.join(str(p) for p in problematic)}.")
    if report.summary.poor_quality_pages:
        parts.append(f"Pages with degraded text: {report.summary.poor_quality_pages}.")
    return " ".join(parts)
