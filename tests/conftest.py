"""
Shared test fixtures.
"""

import pytest

from extraction_quality.config import Settings
from extraction_quality.schemas.quality import QualityThresholds

GOOD_PARAGRAPH = (
    "The quarterly report describes revenue growth across every region. "
    "Sales teams exceeded their targets while operating costs remained stable. "
    "Management expects continued momentum through the next financial year."
)


@pytest.fixture
def good_paragraph():
    """Clean prose that scores 100."""
    return GOOD_PARAGRAPH


@pytest.fixture
def good_pages():
    """Distinct clean pages, one per page number."""
    return [f"{GOOD_PARAGRAPH} Section {n} ends here." for n in range(1, 11)]


@pytest.fixture
def gibberish_text():
    return "§†‡¤¶©®™" * 10


@pytest.fixture
def thresholds():
    return QualityThresholds()


@pytest.fixture
def fast_settings(tmp_path):
    """Default policy with backoff shrunk so retry tests run instantly."""
    return Settings(
        RECOVERY_MAX_CONCURRENCY=3,
        RECOVERY_MAX_ATTEMPTS=3,
        RECOVERY_BACKOFF_BASE_SECONDS=0.001,
        RECOVERY_BACKOFF_MAX_SECONDS=0.004,
        RECOVERY_CALL_TIMEOUT_SECONDS=5.0,
        ARTIFACT_ROOT=str(tmp_path / "artifacts"),
    )
