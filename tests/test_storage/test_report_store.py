"""
Tests for report stores and storage paths.
"""

from datetime import datetime, timedelta, timezone

import pytest

from extraction_quality.models.enums import ExtractionTier, JobStatus
from extraction_quality.pipeline.document_aggregator import analyze_document_quality
from extraction_quality.schemas.quality import ExtractionRecord
from extraction_quality.storage.paths import latest_report_path, quality_report_path, safe_document_id
from extraction_quality.storage.report_store import FileReportStore, InMemoryReportStore


@pytest.fixture
def make_record(good_paragraph, thresholds):
    initial = analyze_document_quality([good_paragraph, ""], thresholds)
    final = analyze_document_quality([good_paragraph, good_paragraph], thresholds)

    def _make(document_id="doc-1", run_id="run-1", created_at=None):
        return ExtractionRecord(
            document_id=document_id,
            run_id=run_id,
            status=JobStatus.COMPLETED,
            tier_attempted=ExtractionTier.VISION_OCR,
            initial_report=initial,
            final_report=final,
            recovered_pages=[2],
            duration_ms=120,
            created_at=created_at or datetime.now(timezone.utc),
        )

    return _make


class TestPaths:

    def test_report_paths(self):
        assert quality_report_path("doc-1", "abc") == "doc-1/quality/abc.json"
        assert latest_report_path("doc-1") == "doc-1/quality/latest.json"

    def test_document_id_cannot_escape_root(self):
        cleaned = safe_document_id("../../etc/passwd")
        assert "/" not in cleaned
        assert not cleaned.startswith(".")

    def test_empty_id(self):
        cleaned = safe_document_id("")
        assert cleaned.startswith("_-")
        assert cleaned != safe_document_id("_")

    def test_safe_ids_unchanged(self):
        assert safe_document_id("statement-2024_03.v2") == "statement-2024_03.v2"

    def test_rewritten_ids_do_not_collide(self):
        assert safe_document_id("a/b") != safe_document_id("a_b")
        assert safe_document_id("a_b") == "a_b"
        assert safe_document_id("a/b").startswith("a_b-")
        assert safe_document_id("a/b") == safe_document_id("a/b")

    def test_colliding_ids_keep_separate_history(self, tmp_path, make_record):
        store = FileReportStore(root=str(tmp_path))
        store.save(make_record(document_id="a/b", run_id="slash"))
        store.save(make_record(document_id="a_b", run_id="underscore"))

        assert store.latest("a/b").run_id == "slash"
        assert store.latest("a_b").run_id == "underscore"
        assert [r.run_id for r in store.history("a/b")] == ["slash"]


class TestInMemoryReportStore:

    def test_save_and_latest(self, make_record):
        store = InMemoryReportStore(max_entries=2)
        store.save(make_record(run_id="a"))
        store.save(make_record(run_id="b"))
        assert store.latest("doc-1").run_id == "b"
        assert len(store) == 1

    def test_evicts_least_recently_used(self, make_record):
        store = InMemoryReportStore(max_entries=2)
        store.save(make_record("doc-1"))
        store.save(make_record("doc-2"))
        store.latest("doc-1")
        store.save(make_record("doc-3"))
        assert store.latest("doc-2") is None
        assert [r.document_id for r in store.recent()] == ["doc-3", "doc-1"]

    def test_delete(self, make_record):
        store = InMemoryReportStore()
        store.save(make_record())
        assert store.delete("doc-1")
        assert not store.delete("doc-1")
        assert store.latest("doc-1") is None


class TestFileReportStore:

    def test_round_trip(self, tmp_path, make_record):
        store = FileReportStore(root=str(tmp_path))
        record = make_record()
        store.save(record)

        loaded = store.latest("doc-1")
        assert loaded == record
        assert (tmp_path / "doc-1" / "quality" / "run-1.json").exists()

    def test_history_oldest_first(self, tmp_path, make_record):
        store = FileReportStore(root=str(tmp_path))
        now = datetime.now(timezone.utc)
        store.save(make_record(run_id="second", created_at=now))
        store.save(make_record(run_id="first", created_at=now - timedelta(minutes=5)))

        assert [r.run_id for r in store.history("doc-1")] == ["first", "second"]
        # latest.json follows the most recent save, not the newest timestamp
        assert store.latest("doc-1").run_id == "first"

    def test_unknown_document(self, tmp_path):
        store = FileReportStore(root=str(tmp_path))
        assert store.latest("nope") is None
        assert store.history("nope") == []
        assert not store.delete("nope")

    def test_delete(self, tmp_path, make_record):
        store = FileReportStore(root=str(tmp_path))
        store.save(make_record())
        assert store.delete("doc-1")
        assert store.latest("doc-1") is None
