"""
Stores for recent extraction results.

Callers inject a store into the orchestrator; there is no module-level cache.
InMemoryReportStore lives as long as the object holding it. FileReportStore
persists JSON under ARTIFACT_ROOT so reports survive restarts.
"""

from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Optional

import structlog

from extraction_quality.config import settings
from extraction_quality.schemas.quality import ExtractionRecord
from extraction_quality.storage.paths import (
    ensure_parent_dirs,
    latest_report_path,
    quality_report_path,
    safe_document_id,
)

logger = structlog.get_logger(__name__)


class ReportStore(ABC):
    """Save and look up extraction records by document id."""

    @abstractmethod
    def save(self, record: ExtractionRecord) -> None:
        ...

    @abstractmethod
    def latest(self, document_id: str) -> Optional[ExtractionRecord]:
        """Most recent record for a document, or None."""
        ...

    @abstractmethod
    def delete(self, document_id: str) -> bool:
        """Forget a document. Returns True if anything was stored."""
        ...


class InMemoryReportStore(ReportStore):
    """Bounded store of the most recently used documents (LRU eviction)."""

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max(1, max_entries or settings.REPORT_STORE_MAX_ENTRIES)
        self._records: "OrderedDict[str, ExtractionRecord]" = OrderedDict()

    def save(self, record: ExtractionRecord) -> None:
        self._records[record.document_id] = record
        self._records.move_to_end(record.document_id)
        while len(self._records) > self.max_entries:
            evicted, _ = self._records.popitem(last=False)
            logger.debug("report_evicted", document_id=evicted)

    def latest(self, document_id: str) -> Optional[ExtractionRecord]:
        record = self._records.get(document_id)
        if record is not None:
            self._records.move_to_end(document_id)
        return record

    def delete(self, document_id: str) -> bool:
        return self._records.pop(document_id, None) is not None

    def recent(self, limit: int = 20) -> list[ExtractionRecord]:
        """Most recently used first."""
        return list(reversed(self._records.values()))[:limit]

    def __len__(self) -> int:
        return len(self._records)


class FileReportStore(ReportStore):
    """
    JSON records on the local filesystem.
    Each run is kept; latest.json points at the newest one.
    """

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.ARTIFACT_ROOT)
        self.root.mkdir(parents=True, exist_ok=True)

    def save(self, record: ExtractionRecord) -> None:
        payload = record.model_dump_json(indent=2)
        for relative in (
            quality_report_path(record.document_id, record.run_id),
            latest_report_path(record.document_id),
        ):
            full_path = ensure_parent_dirs(str(self.root), relative)
            full_path.write_text(payload, encoding="utf-8")
        logger.info(
            "report_saved",
            document_id=record.document_id,
            run_id=record.run_id,
            status=record.status.value,
        )

    def latest(self, document_id: str) -> Optional[ExtractionRecord]:
        full_path = self.root / latest_report_path(document_id)
        if not full_path.exists():
            return None
        return ExtractionRecord.model_validate_json(full_path.read_text(encoding="utf-8"))

    def history(self, document_id: str) -> list[ExtractionRecord]:
        """Every stored run for a document, oldest first."""
        quality_dir = self.root / safe_document_id(document_id) / "quality"
        if not quality_dir.exists():
            return []
        records = [
            ExtractionRecord.model_validate_json(p.read_text(encoding="utf-8"))
            for p in quality_dir.glob("*.json")
            if p.name != "latest.json"
        ]
        return sorted(records, key=lambda r: r.created_at)

    def delete(self, document_id: str) -> bool:
        quality_dir = self.root / safe_document_id(document_id) / "quality"
        if not quality_dir.exists():
            return False
        count = 0
        for p in quality_dir.glob("*.json"):
            p.unlink()
            count += 1
        quality_dir.rmdir()
        logger.info("reports_deleted", document_id=document_id, count=count)
        return count > 0
