"""
PDF page rendering and image cleanup for the OCR recovery tiers.

Pages are rendered in memory; nothing is written to the artifact store.
"""

from typing import Optional

import cv2
import numpy as np
import structlog
from PIL import Image
from pdf2image import convert_from_path

logger = structlog.get_logger(__name__)


# ─── PDF Rendering ────────────────────────────────────────────

def render_page(
    pdf_path: str,
    page_number: int,
    dpi: int = 300,
    poppler_path: Optional[str] = None,
) -> Optional[Image.Image]:
    """Render one 1-indexed page. Returns None if the page does not exist."""
    images = convert_from_path(
        pdf_path,
        dpi=dpi,
        first_page=page_number,
        last_page=page_number,
        poppler_path=poppler_path,
    )
    return images[0] if images else None


def render_document(
    pdf_path: str,
    dpi: int = 300,
    poppler_path: Optional[str] = None,
) -> list[Image.Image]:
    """Render every page of a PDF, in page order."""
    images = convert_from_path(pdf_path, dpi=dpi, thread_count=2, poppler_path=poppler_path)
    logger.info("pdf_rendered", page_count=len(images), dpi=dpi)
    return images


# ─── Cleanup ─────────────────────────────────────────────────

def estimate_skew(gray: np.ndarray) -> float:
    """
    Median angle of near-horizontal Hough lines, in degrees.
    Returns 0.0 when there is not enough line structure to judge.
    """
    edges = cv2.Canny(gray, 50, 150, apertureSize=3)
    lines = cv2.HoughLinesP(edges, 1, np.pi / 180, threshold=100,
                            minLineLength=gray.shape[1] * 0.2, maxLineGap=10)
    if lines is None or len(lines) < 3:
        return 0.0

    angles = []
    for line in lines:
        x1, y1, x2, y2 = line[0]
        if x2 == x1:
            continue
        angle = float(np.degrees(np.arctan2(y2 - y1, x2 - x1)))
        if abs(angle) < 20:
            angles.append(angle)
    return float(np.median(angles)) if angles else 0.0


def prepare_for_ocr(image: Image.Image) -> Image.Image:
    """
    Grayscale, deskew small rotations (0.5 to 15 degrees) and normalise
    contrast. Falls back to the plain grayscale image if OpenCV chokes.
    """
    gray = np.array(image.convert("L"))
    try:
        angle = estimate_skew(gray)
        if 0.5 < abs(angle) < 15:
            h, w = gray.shape[:2]
            matrix = cv2.getRotationMatrix2D((w // 2, h // 2), angle, 1.0)
            gray = cv2.warpAffine(gray, matrix, (w, h), borderMode=cv2.BORDER_REPLICATE)
            logger.debug("skew_corrected", angle=round(angle, 3))

        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        gray = clahe.apply(gray)
    except cv2.error as e:
        logger.debug("ocr_cleanup_skipped", reason=str(e))

    return Image.fromarray(gray)
