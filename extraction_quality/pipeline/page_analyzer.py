"""
Page quality analysis - penalty model with critical signals.

Scoring starts at 100 and each check subtracts a penalty. The checks are
independent so a page can fail for several reasons at once, but any single
critical signal (empty page, dominant gibberish, dominant single-character
tokens) forces recovery regardless of the final score.

Pure and deterministic: no I/O, no shared state, never raises.
"""

import re
import unicodedata
from functools import lru_cache
from typing import Optional

from extraction_quality.schemas.quality import PageQualityReport, QualityThresholds

EMPTY_PAGE_ISSUE = "Empty page - no text extracted"
SUSPICIOUS_PATTERN_ISSUE = "Suspicious character patterns detected"

# Penalties are part of the scoring arithmetic, not policy; cutoffs live in
# QualityThresholds.
SPECIAL_CHAR_CRITICAL_PENALTY = 60
SPECIAL_CHAR_WARNING_PENALTY = 15
SINGLE_CHAR_CRITICAL_PENALTY = 35
SINGLE_CHAR_WARNING_PENALTY = 25
SUSPICIOUS_PATTERN_PENALTY = 20
LOW_CHAR_COUNT_PENALTY = 10
LOW_LINE_DENSITY_PENALTY = 10
SHORT_WORD_PENALTY = 10
UNIQUE_WORD_PENALTY = 10
WHITESPACE_PENALTY = 5
CAMEL_CASE_PENALTY = 5

# Layout artifacts tolerated before they count against a page
WHITESPACE_RUN_LIMIT = 5
CAMEL_CASE_LIMIT = 10

# Punctuation that ordinary prose, tables and references contain.
_COMMON_PUNCTUATION = frozenset(
    ".,!?:;-()[]{}\"'/"
    "\u2018\u2019\u201c\u201d"  # typographic quotes
    "\u2013\u2014\u2026"  # en dash, em dash, ellipsis
    "\u0964\u0965"  # danda, double danda
)

_SUSPICIOUS_PATTERNS = [
    re.compile("\ufffd"),  # replacement character
    re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f]"),  # stray control characters
    re.compile("\u00c3[\u0080-\u00bf]|\u00e2\u20ac"),  # UTF-8 read as Latin-1 or cp1252
    re.compile(r"([^\W_])\1{10,}"),  # same letter/digit 11+ times
]

_WHITESPACE_RUN = re.compile(r"[ \t]{5,}")
_CAMEL_CASE = re.compile(r"[a-z][A-Z]")  # words glued together when spaces are lost


@lru_cache(maxsize=1)
def default_thresholds() -> QualityThresholds:
    """Thresholds built from environment settings."""
    return QualityThresholds.from_settings()


def _is_special(ch: str) -> bool:
    if ch.isalnum() or ch.isspace() or ch in _COMMON_PUNCTUATION:
        return False
    # Combining marks (vowel signs, decomposed accents) belong to the letter before them
    return not unicodedata.category(ch).startswith("M")


def special_char_ratio(text: str) -> float:
    if not text:
        return 0.0
    return sum(1 for ch in text if _is_special(ch)) / len(text)


def single_char_word_ratio(tokens: list[str]) -> float:
    """Share of tokens that are a lone letter. Digits and operators don't count."""
    if not tokens:
        return 0.0
    return sum(1 for t in tokens if len(t) == 1 and t.isalpha()) / len(tokens)


def unique_word_ratio(tokens: list[str]) -> float:
    if not tokens:
        return 0.0
    return len({t.lower() for t in tokens}) / len(tokens)


def has_suspicious_patterns(text: str) -> bool:
    return any(p.search(text) for p in _SUSPICIOUS_PATTERNS)


def layout_warnings(
    raw: str,
    tokens: list[str],
    line_count: int,
    thresholds: QualityThresholds,
) -> list[tuple[str, int]]:
    """
    Softer signals of a damaged text layer as (issue, penalty) pairs.

    Each one on its own leaves a clean page above the fallback cutoff;
    together they can push a marginal page below it.
    """
    t = thresholds
    char_count = len(raw)
    word_count = len(tokens)
    warnings: list[tuple[str, int]] = []

    if line_count > 3 and char_count / line_count < t.min_chars_per_line:
        warnings.append(("Very low text density per line", LOW_LINE_DENSITY_PENALTY))

    if word_count > 10 and char_count / word_count < t.min_avg_word_length:
        warnings.append(("Unusually short average word length", SHORT_WORD_PENALTY))

    if word_count > t.vocabulary_min_words:
        ratio = unique_word_ratio(tokens)
        if ratio > t.unique_word_high:
            warnings.append(
                ("Unusually high unique word ratio - possible gibberish", UNIQUE_WORD_PENALTY)
            )
        elif ratio < t.unique_word_low:
            warnings.append(
                ("Unusually low unique word ratio - possible encoding issue", UNIQUE_WORD_PENALTY)
            )

    if len(_WHITESPACE_RUN.findall(raw)) > WHITESPACE_RUN_LIMIT:
        warnings.append(("Excessive whitespace detected", WHITESPACE_PENALTY))

    if len(_CAMEL_CASE.findall(raw)) > CAMEL_CASE_LIMIT:
        warnings.append(("Many camelCase anomalies - missing spaces", CAMEL_CASE_PENALTY))

    return warnings


def short_text_penalty(char_count: int, thresholds: QualityThresholds) -> int:
    """
    Penalty for pages under min_char_count.
    Grows with the square of the shortfall so a short heading barely loses
    points while a three-character page drops below the fallback cutoff.
    """
    shortfall = thresholds.min_char_count - char_count
    if shortfall <= 0:
        return 0
    numerator = thresholds.short_text_max_penalty * shortfall * shortfall
    denominator = thresholds.min_char_count * thresholds.min_char_count
    return -(-numerator // denominator)  # ceiling division


def analyze_page_quality(
    text: str,
    page_number: int,
    thresholds: Optional[QualityThresholds] = None,
) -> PageQualityReport:
    """
    Score a single page's extracted text and list concrete issues.

    Args:
        text: Raw text for the page (anything that is not a str counts as empty).
        page_number: 1-indexed page number.
        thresholds: Scoring policy; defaults to the environment settings.
    """
    t = thresholds or default_thresholds()
    raw = text if isinstance(text, str) else ""
    page_number = max(1, int(page_number))
    char_count = len(raw)

    # 1. Empty page: nothing else to measure
    if not raw.strip():
        return PageQualityReport(
            page_number=page_number,
            char_count=char_count,
            quality_score=0,
            issues=[EMPTY_PAGE_ISSUE],
            needs_vision_fallback=True,
        )

    tokens = raw.split()
    line_count = sum(1 for line in raw.splitlines() if line.strip())
    issues: list[str] = []
    score = 100
    critical = False

    # 2. Character count
    penalty = short_text_penalty(char_count, t)
    if penalty:
        issues.append(f"Very low character count (< {t.min_char_count})")
        score -= penalty
    elif char_count < t.low_char_count:
        issues.append(f"Low character count (< {t.low_char_count})")
        score -= LOW_CHAR_COUNT_PENALTY

    # 3. Special characters (gibberish)
    special_ratio = special_char_ratio(raw)
    if special_ratio > t.special_char_cutoff:
        issues.append(
            f"High special character ratio (> {t.special_char_cutoff:.0%}) - possible gibberish"
        )
        score -= SPECIAL_CHAR_CRITICAL_PENALTY
        critical = True
    elif special_ratio > t.special_char_warning:
        issues.append(f"Elevated special character ratio (> {t.special_char_warning:.0%})")
        score -= SPECIAL_CHAR_WARNING_PENALTY

    # 4. Single-character tokens (letter-by-letter truncation)
    single_ratio = single_char_word_ratio(tokens)
    if single_ratio > t.single_char_word_cutoff:
        issues.append(
            f"Too many single-character words (> {t.single_char_word_cutoff:.0%}) - truncation detected"
        )
        score -= SINGLE_CHAR_CRITICAL_PENALTY
        critical = True
    elif single_ratio > t.single_char_word_warning:
        issues.append(f"Many single-character words (> {t.single_char_word_warning:.0%})")
        score -= SINGLE_CHAR_WARNING_PENALTY

    # 5. Layout and vocabulary warnings, never critical on their own
    for issue, penalty in layout_warnings(raw, tokens, line_count, t):
        issues.append(issue)
        score -= penalty

    # 6. Encoding artifacts cap the score even when everything else passes
    if has_suspicious_patterns(raw):
        issues.append(SUSPICIOUS_PATTERN_ISSUE)
        score = min(score - SUSPICIOUS_PATTERN_PENALTY, t.suspicious_score_cap)

    # 7. Clamp
    score = max(0, min(100, score))

    # 8. Critical signals force recovery regardless of the arithmetic
    needs_fallback = critical or score < t.low_score_cutoff

    return PageQualityReport(
        page_number=page_number,
        char_count=char_count,
        word_count=len(tokens),
        line_count=line_count,
        special_char_ratio=round(special_ratio, 4),
        single_char_word_ratio=round(single_ratio, 4),
        quality_score=score,
        issues=issues,
        needs_vision_fallback=needs_fallback,
    )
