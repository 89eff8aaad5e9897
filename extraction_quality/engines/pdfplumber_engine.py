"""
pdfplumber text-layer engine.
Tier 1 for PDFs with embedded text: fast, free, and often wrong on scans,
ligature-heavy fonts or broken encodings, which is what the quality analyzer
is there to catch.
"""

from pathlib import Path
from typing import Union

import pdfplumber
import structlog

from extraction_quality.engines.base import TextLayerEngine

logger = structlog.get_logger(__name__)


class PdfPlumberEngine(TextLayerEngine):
    """Extract per-page text from the PDF text layer."""

    engine_name = "pdfplumber"
    engine_version = "0.11"

    def __init__(self, x_tolerance: float = 3, y_tolerance: float = 3):
        self.x_tolerance = x_tolerance
        self.y_tolerance = y_tolerance

    def extract_page_texts(self, document_ref: Union[str, Path]) -> list[str]:
        """
        Text for every page, in page order.
        Unreadable pages come back as "" and an unreadable file as [].
        """
        texts: list[str] = []
        try:
            with pdfplumber.open(str(document_ref)) as pdf:
                for page_number, page in enumerate(pdf.pages, start=1):
                    texts.append(self._page_text(page, page_number, document_ref))
        except Exception as e:
            logger.warning(
                "text_layer_open_failed",
                document_ref=str(document_ref),
                error=f"{type(e).__name__}: {e}",
            )
            return []

        logger.debug(
            "text_layer_extraction_complete",
            document_ref=str(document_ref),
            page_count=len(texts),
            empty_pages=sum(1 for t in texts if not t.strip()),
        )
        return texts

    def _page_text(self, page, page_number: int, document_ref) -> str:
        try:
            return page.extract_text(
                x_tolerance=self.x_tolerance,
                y_tolerance=self.y_tolerance,
            ) or ""
        except Exception as e:
            logger.warning(
                "text_layer_page_failed",
                document_ref=str(document_ref),
                page_number=page_number,
                error=f"{type(e).__name__}: {e}",
            )
            return ""

    def get_page_count(self, pdf_path: Union[str, Path]) -> int:
        """Get total page count of a PDF."""
        with pdfplumber.open(str(pdf_path)) as pdf:
            return len(pdf.pages)
