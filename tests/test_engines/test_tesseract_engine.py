"""
Tests for the Tesseract engine's error mapping and page flow.
Rendering and OCR are patched out; no tesseract or poppler binary is needed.
"""

import pytest
import pytesseract
from PIL import Image
from pdf2image.exceptions import PDFInfoNotInstalledError, PDFPageCountError, PDFPopplerTimeoutError

from extraction_quality.engines import tesseract_engine
from extraction_quality.engines.base import (
    ConfigurationError,
    PermanentRecoveryError,
    TransientRecoveryError,
)
from extraction_quality.engines.tesseract_engine import TesseractEngine


@pytest.fixture
def engine(fast_settings):
    return TesseractEngine(settings=fast_settings)


@pytest.fixture
def blank_page():
    return Image.new("RGB", (200, 100), "white")


class TestClassify:

    def test_missing_binary_is_configuration(self, engine):
        error = engine._classify(pytesseract.TesseractNotFoundError(), "OCR page 1")
        assert isinstance(error, ConfigurationError)
        assert error.error_code == "ENGINE_NOT_INSTALLED"

    def test_missing_poppler_is_configuration(self, engine):
        assert isinstance(engine._classify(PDFInfoNotInstalledError(), "render"), ConfigurationError)

    def test_timeouts_are_transient(self, engine):
        assert isinstance(engine._classify(PDFPopplerTimeoutError(), "render"), TransientRecoveryError)
        assert isinstance(
            engine._classify(RuntimeError("Tesseract process timeout"), "OCR page 1"),
            TransientRecoveryError,
        )

    def test_unreadable_document_is_permanent(self, engine):
        error = engine._classify(PDFPageCountError("Unable to get page count."), "render")
        assert isinstance(error, PermanentRecoveryError)
        assert error.error_code == "UNREADABLE_DOCUMENT"

    def test_tesseract_error_is_permanent(self, engine):
        error = engine._classify(pytesseract.TesseractError(1, "bad image"), "OCR page 2")
        assert isinstance(error, PermanentRecoveryError)

    def test_missing_file_is_permanent_other_io_is_transient(self, engine):
        assert isinstance(engine._classify(FileNotFoundError("gone.pdf"), "render"), PermanentRecoveryError)
        assert isinstance(engine._classify(OSError("disk busy"), "render"), TransientRecoveryError)

    def test_unknown_error_is_permanent(self, engine):
        error = engine._classify(ValueError("odd"), "render")
        assert error.error_code == "UNEXPECTED"
        assert "render failed" in error.message


class TestRecognizePage:

    @pytest.mark.asyncio
    async def test_ocr_text_returned(self, engine, blank_page, monkeypatch):
        monkeypatch.setattr(tesseract_engine, "render_page", lambda *a, **k: blank_page)
        monkeypatch.setattr(pytesseract, "image_to_string", lambda *a, **k: "Closing balance")

        assert await engine.recognize_page("doc.pdf", 1) == "Closing balance"

    @pytest.mark.asyncio
    async def test_missing_page(self, engine, monkeypatch):
        monkeypatch.setattr(tesseract_engine, "render_page", lambda *a, **k: None)

        with pytest.raises(PermanentRecoveryError) as exc_info:
            await engine.recognize_page("doc.pdf", 9)
        assert exc_info.value.error_code == "PAGE_OUT_OF_RANGE"

    @pytest.mark.asyncio
    async def test_render_failure_is_classified(self, engine, monkeypatch):
        def _raise(*args, **kwargs):
            raise PDFInfoNotInstalledError("pdfinfo not found")

        monkeypatch.setattr(tesseract_engine, "render_page", _raise)

        with pytest.raises(ConfigurationError):
            await engine.recognize_page("doc.pdf", 1)


class TestRecognizeDocument:

    @pytest.mark.asyncio
    async def test_every_page_recognised(self, engine, blank_page, monkeypatch):
        monkeypatch.setattr(tesseract_engine, "render_document", lambda *a, **k: [blank_page, blank_page])
        monkeypatch.setattr(pytesseract, "image_to_string", lambda *a, **k: "text")

        assert await engine.recognize_document("doc.pdf") == ["text", "text"]

    @pytest.mark.asyncio
    async def test_no_pages_rendered(self, engine, monkeypatch):
        monkeypatch.setattr(tesseract_engine, "render_document", lambda *a, **k: [])

        with pytest.raises(PermanentRecoveryError):
            await engine.recognize_document("doc.pdf")


class TestHealthCheck:

    @pytest.mark.asyncio
    async def test_healthy(self, engine, monkeypatch):
        monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
        assert await engine.health_check()
        assert engine.engine_version == "5.3.0"

    @pytest.mark.asyncio
    async def test_binary_missing(self, engine, monkeypatch):
        def _raise():
            raise pytesseract.TesseractNotFoundError()

        monkeypatch.setattr(pytesseract, "get_tesseract_version", _raise)
        assert not await engine.health_check()

    def test_cost_defaults_to_ocr_rate(self, engine, fast_settings):
        assert engine.cost_per_page_usd == fast_settings.OCR_COST_PER_PAGE_USD
