"""
Tesseract OCR recovery engine.
Serves both recovery tiers: single pages for vision recovery and whole
documents for full OCR. Pages are rendered with pdf2image and cleaned up with
OpenCV before recognition.
"""

import asyncio
from typing import Optional

import pytesseract
import structlog
from PIL import Image
from pdf2image.exceptions import (
    PDFInfoNotInstalledError,
    PDFPageCountError,
    PDFPopplerTimeoutError,
    PDFSyntaxError,
)

from extraction_quality.config import Settings, settings as default_settings
from extraction_quality.engines.base import (
    ConfigurationError,
    PermanentRecoveryError,
    RecoveryEngine,
    RecoveryError,
    TransientRecoveryError,
)
from extraction_quality.pipeline.renderer import prepare_for_ocr, render_document, render_page

logger = structlog.get_logger(__name__)


class TesseractEngine(RecoveryEngine):
    """
    Tesseract OCR engine for scanned or badly encoded PDFs.
    Blocking work runs in a worker thread so many pages can be in flight.
    """

    engine_name = "tesseract"
    engine_version = "5.x"

    def __init__(
        self,
        lang: Optional[str] = None,
        psm: Optional[int] = None,
        dpi: Optional[int] = None,
        cost_per_page_usd: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Args:
            lang: Tesseract language code
            psm: Page segmentation mode (3 = fully automatic)
            dpi: Render resolution for page images
            cost_per_page_usd: Cost estimate recorded per recognised page
        """
        cfg = settings or default_settings
        self.lang = lang or cfg.OCR_LANG
        self.psm = psm if psm is not None else cfg.OCR_PSM
        self.dpi = dpi or cfg.OCR_RENDER_DPI
        self.timeout = cfg.OCR_TIMEOUT_SECONDS
        self.poppler_path = cfg.POPPLER_PATH
        self._cost_per_page_usd = (
            cost_per_page_usd if cost_per_page_usd is not None else cfg.OCR_COST_PER_PAGE_USD
        )
        pytesseract.pytesseract.tesseract_cmd = cfg.OCR_TESSERACT_CMD

    @property
    def cost_per_page_usd(self) -> float:
        return self._cost_per_page_usd

    async def recognize_page(self, document_ref, page_number: int) -> str:
        """OCR a single 1-indexed page."""
        return await asyncio.to_thread(self._recognize_page_sync, str(document_ref), page_number)

    async def recognize_document(self, document_ref) -> list[str]:
        """OCR every page of the document."""
        return await asyncio.to_thread(self._recognize_document_sync, str(document_ref))

    async def health_check(self) -> bool:
        """Check if Tesseract is installed and accessible."""
        try:
            version = await asyncio.to_thread(pytesseract.get_tesseract_version)
            self.engine_version = str(version)
            return True
        except Exception as e:
            logger.warning("tesseract_unavailable", error=str(e))
            return False

    # ─── Blocking helpers ────────────────────────────────────

    def _recognize_page_sync(self, pdf_path: str, page_number: int) -> str:
        try:
            image = render_page(pdf_path, page_number, dpi=self.dpi, poppler_path=self.poppler_path)
        except Exception as e:
            raise self._classify(e, f"render page {page_number}") from e

        if image is None:
            raise PermanentRecoveryError(
                self.engine_name, "PAGE_OUT_OF_RANGE",
                f"Page {page_number} does not exist in {pdf_path}",
            )

        text = self._ocr_image(image, page_number)
        logger.debug(
            "tesseract_page_complete",
            pdf_path=pdf_path,
            page_number=page_number,
            char_count=len(text),
        )
        return text

    def _recognize_document_sync(self, pdf_path: str) -> list[str]:
        try:
            images = render_document(pdf_path, dpi=self.dpi, poppler_path=self.poppler_path)
        except Exception as e:
            raise self._classify(e, "render document") from e

        if not images:
            raise PermanentRecoveryError(self.engine_name, "NO_PAGES", f"{pdf_path} rendered no pages")

        texts = [self._ocr_image(img, i) for i, img in enumerate(images, start=1)]
        logger.info("tesseract_document_complete", pdf_path=pdf_path, page_count=len(texts))
        return texts

    def _ocr_image(self, image: Image.Image, page_number: int) -> str:
        try:
            return pytesseract.image_to_string(
                prepare_for_ocr(image),
                lang=self.lang,
                config=f"--psm {self.psm}",
                timeout=self.timeout,
            )
        except Exception as e:
            raise self._classify(e, f"OCR page {page_number}") from e

    def _classify(self, error: Exception, action: str) -> RecoveryError:
        """Map library errors onto the retry taxonomy."""
        detail = f"{action} failed: {error}"
        if isinstance(error, RecoveryError):
            return error
        if isinstance(error, (pytesseract.TesseractNotFoundError, PDFInfoNotInstalledError)):
            return ConfigurationError(self.engine_name, "ENGINE_NOT_INSTALLED", detail)
        if isinstance(error, PDFPopplerTimeoutError):
            return TransientRecoveryError(self.engine_name, "RENDER_TIMEOUT", detail)
        if isinstance(error, RuntimeError) and "timeout" in str(error).lower():
            # pytesseract signals its own timeout with a bare RuntimeError
            return TransientRecoveryError(self.engine_name, "OCR_TIMEOUT", detail)
        if isinstance(error, (PDFPageCountError, PDFSyntaxError)):
            return PermanentRecoveryError(self.engine_name, "UNREADABLE_DOCUMENT", detail)
        if isinstance(error, pytesseract.TesseractError):
            return PermanentRecoveryError(self.engine_name, "OCR_FAILED", detail)
        if isinstance(error, FileNotFoundError):
            return PermanentRecoveryError(self.engine_name, "DOCUMENT_NOT_FOUND", detail)
        if isinstance(error, OSError):
            return TransientRecoveryError(self.engine_name, "IO_ERROR", detail)
        return PermanentRecoveryError(self.engine_name, "UNEXPECTED", detail)
