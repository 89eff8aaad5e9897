"""
Prometheus metrics for extraction quality assessment and recovery.
"""

from prometheus_client import Counter, Histogram


# ── Quality Analysis ────────────────────────────────────────
pages_analyzed_total = Counter(
    "extraction_pages_analyzed_total",
    "Total pages scored by the quality analyzer",
    ["needs_fallback"],
)

page_quality_scores = Histogram(
    "extraction_page_quality_score",
    "Distribution of page quality scores",
    ["tier"],
    buckets=[10, 20, 30, 40, 50, 61, 70, 80, 90, 100],
)

# ── Orchestration ───────────────────────────────────────────
documents_orchestrated_total = Counter(
    "extraction_documents_total",
    "Documents run through tiered extraction",
    ["initial_method", "status"],
)

document_orchestration_duration_seconds = Histogram(
    "extraction_document_duration_seconds",
    "Time to run tiered extraction for a document",
    ["initial_method"],
    buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300],
)

# ── Recovery Calls ──────────────────────────────────────────
recovery_calls_total = Counter(
    "extraction_recovery_calls_total",
    "Recovery calls by tier and outcome",
    ["tier", "engine_name", "outcome"],
)

recovery_retries_total = Counter(
    "extraction_recovery_retries_total",
    "Retries after transient recovery failures",
    ["tier", "engine_name"],
)

# ── External API Costs ───────────────────────────────────────
recovery_cost_usd = Counter(
    "extraction_recovery_cost_usd_total",
    "Estimated cumulative cost of recovery calls in USD",
    ["engine_name", "operation"],
)

recovery_latency_seconds = Histogram(
    "extraction_recovery_latency_seconds",
    "Latency of recovery calls",
    ["engine_name", "operation"],
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60, 120],
)
