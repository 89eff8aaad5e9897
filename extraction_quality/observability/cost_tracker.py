"""
Per-run cost instrumentation for recovery calls.
Records what each recovery tier actually cost a document, in memory, and
mirrors it into Prometheus.
"""

from typing import Optional

import structlog

from extraction_quality.config import Settings, settings as default_settings
from extraction_quality.models.enums import ExtractionTier
from extraction_quality.observability.metrics import recovery_cost_usd, recovery_latency_seconds

logger = structlog.get_logger(__name__)


def estimate_recovery_cost(
    page_count: int,
    tier: ExtractionTier,
    cfg: Optional[Settings] = None,
) -> float:
    """Estimated USD cost of sending page_count pages through a recovery tier."""
    cfg = cfg or default_settings
    if tier == ExtractionTier.VISION_OCR:
        per_page = cfg.VISION_COST_PER_PAGE_USD
    elif tier == ExtractionTier.FULL_OCR:
        per_page = cfg.OCR_COST_PER_PAGE_USD
    else:
        per_page = 0.0
    return round(max(0, page_count) * per_page, 6)


class CostTracker:
    """Track costs of recovery calls for one extraction run."""

    def __init__(self, document_id: Optional[str] = None):
        self.document_id = document_id
        self._events: list[dict] = []

    def record(
        self,
        engine_name: str,
        operation: str,
        page_count: int = 0,
        cost_usd: float = 0.0,
        latency_ms: int = 0,
        ok: bool = True,
    ) -> None:
        """Record a cost event in memory and Prometheus."""
        recovery_cost_usd.labels(
            engine_name=engine_name,
            operation=operation,
        ).inc(cost_usd)

        recovery_latency_seconds.labels(
            engine_name=engine_name,
            operation=operation,
        ).observe(latency_ms / 1000.0)

        self._events.append({
            "engine_name": engine_name,
            "operation": operation,
            "page_count": page_count,
            "cost_usd": cost_usd,
            "latency_ms": latency_ms,
            "ok": ok,
        })

        logger.debug(
            "cost_event_recorded",
            document_id=self.document_id,
            engine_name=engine_name,
            operation=operation,
            cost_usd=cost_usd,
            latency_ms=latency_ms,
            ok=ok,
        )

    def summary(self) -> dict:
        """Return summary of all cost events for this run."""
        total_cost_usd = sum(e["cost_usd"] for e in self._events)
        total_pages = sum(e["page_count"] for e in self._events)
        return {
            "total_cost_usd": round(total_cost_usd, 6),
            "total_pages": total_pages,
            "event_count": len(self._events),
            "failed_calls": sum(1 for e in self._events if not e["ok"]),
            "events": list(self._events),
        }
