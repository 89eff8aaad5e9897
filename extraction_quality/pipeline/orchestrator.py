"""
Tiered extraction orchestrator.

Tiers: TEXT LAYER → VISION OCR (problem pages only) → FULL OCR (whole document)

The text layer is always scored first. What happens next follows the
document report's recommended method: nothing for pdfjs, targeted per-page
recovery for hybrid, whole-document re-extraction for ocr. Partial failures
never raise; the caller always gets a full page-text array and a final report.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Optional, Sequence

import structlog

from extraction_quality.config import Settings, settings as default_settings
from extraction_quality.engines.base import (
    ConfigurationError,
    PermanentRecoveryError,
    RecoveryEngine,
    RecoveryError,
    TextLayerEngine,
    TransientRecoveryError,
)
from extraction_quality.engines.pdfplumber_engine import PdfPlumberEngine
from extraction_quality.engines.tesseract_engine import TesseractEngine
from extraction_quality.models.enums import (
    ExtractionMethod,
    ExtractionTier,
    JobStatus,
    RecoveryOutcome,
)
from extraction_quality.observability.cost_tracker import CostTracker
from extraction_quality.observability.metrics import (
    document_orchestration_duration_seconds,
    documents_orchestrated_total,
    page_quality_scores,
    pages_analyzed_total,
    recovery_calls_total,
    recovery_retries_total,
)
from extraction_quality.pipeline.document_aggregator import (
    aggregate_page_reports,
    analyze_document_quality,
    generate_quality_summary,
    identify_problematic_pages,
    text_layer_too_sparse,
)
from extraction_quality.pipeline.job import ExtractionJob, ExtractionResult, PageResult
from extraction_quality.pipeline.page_analyzer import analyze_page_quality
from extraction_quality.schemas.quality import ExtractionRecord, QualityThresholds
from extraction_quality.storage.report_store import ReportStore

logger = structlog.get_logger(__name__)


def recovery_failed_issue(tier: ExtractionTier, reason: str) -> str:
    return f"Recovery failed ({tier.value}): {reason}"


def recovery_timed_out_issue(tier: ExtractionTier) -> str:
    return f"Recovery timed out ({tier.value})"


def _outcome_for(error: RecoveryError) -> RecoveryOutcome:
    if isinstance(error, ConfigurationError):
        return RecoveryOutcome.UNREACHABLE
    if isinstance(error, TransientRecoveryError):
        return RecoveryOutcome.TRANSIENT_EXHAUSTED
    return RecoveryOutcome.PERMANENT


class ExtractionOrchestrator:
    """
    Runs recovery tiers for one document at a time.

    Engines, thresholds, the report store and the cost tracker are injected so
    tests can run the whole flow against StubEngine without touching globals.
    """

    def __init__(
        self,
        vision_engine: Optional[RecoveryEngine] = None,
        ocr_engine: Optional[RecoveryEngine] = None,
        *,
        settings: Optional[Settings] = None,
        thresholds: Optional[QualityThresholds] = None,
        report_store: Optional[ReportStore] = None,
        cost_tracker: Optional[CostTracker] = None,
    ):
        self.vision_engine = vision_engine
        self.ocr_engine = ocr_engine
        self.settings = settings or default_settings
        self.thresholds = thresholds or QualityThresholds.from_settings(self.settings)
        self.report_store = report_store
        self.cost_tracker = cost_tracker

    async def run_extraction(
        self,
        document_ref: Any,
        initial_page_texts: Sequence[str],
        *,
        document_id: Optional[str] = None,
        deadline_seconds: Optional[float] = None,
        escalate_to_full_ocr: Optional[bool] = None,
    ) -> ExtractionResult:
        """
        Score the text layer, run whichever recovery tier the score calls
        for, and return the best text found for every page.

        Args:
            document_ref: Opaque reference handed to recovery engines
            initial_page_texts: Tier 1 text, one entry per page
            document_id: Identifier for logs and the report store
                (defaults to str(document_ref))
            deadline_seconds: Overall budget for recovery; pages still in
                flight when it expires keep their best text
            escalate_to_full_ocr: Run full OCR after vision recovery if pages
                still fail
        """
        cfg = self.settings
        document_id = document_id or str(document_ref)
        if deadline_seconds is None:
            deadline_seconds = cfg.RECOVERY_DEADLINE_SECONDS
        if escalate_to_full_ocr is None:
            escalate_to_full_ocr = cfg.RECOVERY_ESCALATE_TO_FULL_OCR

        job = ExtractionJob(document_id=document_id)
        costs = self.cost_tracker or CostTracker(document_id=document_id)
        loop = asyncio.get_running_loop()
        deadline_at = loop.time() + deadline_seconds if deadline_seconds is not None else None

        with structlog.contextvars.bound_contextvars(document_id=document_id, run_id=job.run_id):
            # ── Tier 1: TEXT LAYER ──
            texts = [t if isinstance(t, str) else "" for t in initial_page_texts]
            initial_report = analyze_document_quality(texts, self.thresholds)
            for text, report in zip(texts, initial_report.page_reports):
                job.page_results[report.page_number] = PageResult(text=text, report=report)
            job.transition(JobStatus.IN_PROGRESS)
            self._observe(initial_report.page_reports, ExtractionTier.TEXT_LAYER)

            method = initial_report.extraction_method
            logger.info(
                "text_layer_scored",
                total_pages=initial_report.total_pages,
                overall_score=initial_report.overall_score,
                extraction_method=method.value,
                problematic_pages=initial_report.problematic_pages,
                sparse_text_layer=text_layer_too_sparse(initial_report, self.thresholds),
            )

            # ── Tier 2/3: RECOVERY ──
            unreachable = False
            if method == ExtractionMethod.HYBRID:
                unreachable = await self._run_vision_tier(
                    job, document_ref, identify_problematic_pages(initial_report), costs, deadline_at,
                )
                if (
                    escalate_to_full_ocr
                    and self.ocr_engine is not None
                    and job.failing_pages()
                    and not self._expired(deadline_at)
                ):
                    logger.info(
                        "escalating_to_full_ocr",
                        failing_pages=job.failing_pages(),
                        vision_unreachable=unreachable,
                    )
                    # The job fails only when neither recovery engine answered
                    ocr_unreachable = await self._run_full_ocr_tier(job, document_ref, costs, deadline_at)
                    unreachable = unreachable and ocr_unreachable
            elif method == ExtractionMethod.OCR:
                unreachable = await self._run_full_ocr_tier(job, document_ref, costs, deadline_at)

            # ── Finalise ──
            final_report = aggregate_page_reports(job.page_reports(), self.thresholds)
            if unreachable:
                status = JobStatus.FAILED
            elif final_report.total_pages and final_report.summary.failed_pages == 0:
                status = JobStatus.COMPLETED
            else:
                status = JobStatus.COMPLETED_WITH_FAILURES
            job.transition(status)

            duration_ms = job.elapsed_ms
            documents_orchestrated_total.labels(
                initial_method=method.value,
                status=status.value,
            ).inc()
            document_orchestration_duration_seconds.labels(
                initial_method=method.value,
            ).observe(duration_ms / 1000.0)

            result = ExtractionResult(
                page_texts=job.page_texts(),
                report=final_report,
                status=status,
                initial_report=initial_report,
                document_id=document_id,
                run_id=job.run_id,
                tier_attempted=job.tier_attempted,
                recovered_pages=sorted(job.recovered_pages),
                errors=dict(job.errors),
                quality_summary=generate_quality_summary(final_report),
                duration_ms=duration_ms,
                cost_summary=costs.summary(),
            )
            self._store(result)

            logger.info(
                "extraction_completed",
                status=status.value,
                tier_attempted=job.tier_attempted.value,
                initial_score=initial_report.overall_score,
                final_score=final_report.overall_score,
                recovered_pages=result.recovered_pages,
                failed_pages=final_report.summary.failed_pages,
                duration_ms=duration_ms,
            )
            return result

    # ─── Tier 2: per-page vision recovery ────────────────────

    async def _run_vision_tier(
        self,
        job: ExtractionJob,
        document_ref: Any,
        pages: list[int],
        costs: CostTracker,
        deadline_at: Optional[float],
    ) -> bool:
        """Recover problem pages one call each. Returns True if the engine was unreachable."""
        tier = ExtractionTier.VISION_OCR
        job.escalate(tier)
        engine = self.vision_engine

        if self._expired(deadline_at):
            self._flag_timed_out(job, pages, tier)
            return False
        try:
            ready = await self._engine_ready(engine, tier, deadline_at)
        except asyncio.TimeoutError:
            self._flag_timed_out(job, pages, tier)
            return False
        if not ready:
            for page_number in pages:
                job.flag(page_number, recovery_failed_issue(tier, "engine unavailable"))
            return True

        dispatched = pages
        limit = self.settings.RECOVERY_MAX_VISION_PAGES
        if limit and len(pages) > limit:
            dispatched, skipped = pages[:limit], pages[limit:]
            for page_number in skipped:
                job.flag(page_number, recovery_failed_issue(tier, f"page limit of {limit} reached"))
                self._count(tier, engine, RecoveryOutcome.SKIPPED)
            logger.warning("vision_page_limit_reached", limit=limit, skipped_pages=skipped)

        semaphore = asyncio.Semaphore(max(1, self.settings.RECOVERY_MAX_CONCURRENCY))

        async def recover(page_number: int) -> str:
            async with semaphore:
                return await self._call_with_retries(
                    lambda: engine.recognize_page(document_ref, page_number),
                    tier=tier,
                    engine=engine,
                    costs=costs,
                    page_number=page_number,
                )

        tasks = {asyncio.create_task(recover(n)): n for n in dispatched}
        pending = set(tasks)
        unreachable_calls = 0

        # Single writer: only this loop touches job.page_results
        while pending:
            timeout = self._remaining(deadline_at)
            if timeout is not None and timeout <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
            for task in done:
                page_number = tasks[task]
                error = task.exception()
                if error is None:
                    self._apply_text(job, page_number, task.result(), tier, engine)
                    continue
                if not isinstance(error, RecoveryError):
                    error = PermanentRecoveryError(engine.engine_name, "UNEXPECTED", repr(error))
                if isinstance(error, ConfigurationError):
                    unreachable_calls += 1
                job.flag(page_number, recovery_failed_issue(tier, error.message))
                self._count(tier, engine, _outcome_for(error))
                logger.warning(
                    "page_recovery_failed",
                    page_number=page_number,
                    tier=tier.value,
                    error_code=error.error_code,
                    error=error.message,
                )

        if pending:
            await self._abandon(pending)
            abandoned = sorted(tasks[t] for t in pending)
            for _ in abandoned:
                self._count(tier, engine, RecoveryOutcome.TIMED_OUT)
            self._flag_timed_out(job, abandoned, tier)

        return bool(dispatched) and unreachable_calls == len(dispatched)

    # ─── Tier 3: whole-document OCR ──────────────────────────

    async def _run_full_ocr_tier(
        self,
        job: ExtractionJob,
        document_ref: Any,
        costs: CostTracker,
        deadline_at: Optional[float],
    ) -> bool:
        """Re-extract the whole document. Returns True if the engine was unreachable."""
        tier = ExtractionTier.FULL_OCR
        job.escalate(tier)
        engine = self.ocr_engine

        if self._expired(deadline_at):
            self._flag_timed_out(job, job.failing_pages(), tier)
            return False
        try:
            ready = await self._engine_ready(engine, tier, deadline_at)
        except asyncio.TimeoutError:
            self._flag_timed_out(job, job.failing_pages(), tier)
            return False
        if not ready:
            for page_number in job.failing_pages():
                job.flag(page_number, recovery_failed_issue(tier, "engine unavailable"))
            return True

        task = asyncio.create_task(
            self._call_with_retries(
                lambda: engine.recognize_document(document_ref),
                tier=tier,
                engine=engine,
                costs=costs,
            )
        )
        done, _ = await asyncio.wait({task}, timeout=self._remaining(deadline_at))

        if not done:
            await self._abandon({task})
            self._count(tier, engine, RecoveryOutcome.TIMED_OUT)
            self._flag_timed_out(job, job.failing_pages(), tier)
            return False

        error = task.exception()
        if error is not None:
            if not isinstance(error, RecoveryError):
                error = PermanentRecoveryError(engine.engine_name, "UNEXPECTED", repr(error))
            for page_number in job.failing_pages():
                job.flag(page_number, recovery_failed_issue(tier, error.message))
            self._count(tier, engine, _outcome_for(error))
            logger.warning(
                "document_recovery_failed",
                tier=tier.value,
                error_code=error.error_code,
                error=error.message,
            )
            return isinstance(error, ConfigurationError)

        texts = task.result()
        if job.page_results and len(texts) != len(job.page_results):
            logger.warning(
                "page_count_mismatch",
                text_layer_pages=len(job.page_results),
                ocr_pages=len(texts),
            )
        for page_number, text in enumerate(texts, start=1):
            if page_number not in job.page_results:
                # Text layer saw fewer pages than the renderer did
                job.page_results[page_number] = PageResult(
                    text="", report=analyze_page_quality("", page_number, self.thresholds),
                )
            self._apply_text(job, page_number, text, tier, engine)
        for page_number in job.failing_pages():
            if page_number > len(texts):
                job.flag(page_number, recovery_failed_issue(tier, "page missing from OCR output"))
        return False

    # ─── Helpers ─────────────────────────────────────────────

    async def _call_with_retries(
        self,
        call: Callable[[], Awaitable[Any]],
        *,
        tier: ExtractionTier,
        engine: RecoveryEngine,
        costs: CostTracker,
        page_number: Optional[int] = None,
    ) -> Any:
        """
        Invoke a recovery call, retrying transient failures with exponential
        backoff. Raises the last RecoveryError once attempts run out, or the
        first non-transient one immediately.
        """
        cfg = self.settings
        max_attempts = max(1, cfg.RECOVERY_MAX_ATTEMPTS)

        for attempt in range(1, max_attempts + 1):
            started = time.monotonic()
            try:
                result = await asyncio.wait_for(call(), timeout=cfg.RECOVERY_CALL_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                error: RecoveryError = TransientRecoveryError(
                    engine.engine_name, "CALL_TIMEOUT",
                    f"no response after {cfg.RECOVERY_CALL_TIMEOUT_SECONDS}s",
                )
            except RecoveryError as e:
                error = e
            except Exception as e:
                logger.error(
                    "recovery_call_crashed",
                    engine_name=engine.engine_name,
                    page_number=page_number,
                    exc_info=True,
                )
                error = PermanentRecoveryError(engine.engine_name, "UNEXPECTED", f"{type(e).__name__}: {e}")
            else:
                page_count = 1 if page_number is not None else len(result)
                costs.record(
                    engine_name=engine.engine_name,
                    operation=tier.value,
                    page_count=page_count,
                    cost_usd=page_count * engine.cost_per_page_usd,
                    latency_ms=int((time.monotonic() - started) * 1000),
                )
                return result

            costs.record(
                engine_name=engine.engine_name,
                operation=tier.value,
                latency_ms=int((time.monotonic() - started) * 1000),
                ok=False,
            )
            if not isinstance(error, TransientRecoveryError) or attempt == max_attempts:
                raise error

            backoff = min(
                cfg.RECOVERY_BACKOFF_MAX_SECONDS,
                cfg.RECOVERY_BACKOFF_BASE_SECONDS * (2 ** (attempt - 1)),
            )
            recovery_retries_total.labels(tier=tier.value, engine_name=engine.engine_name).inc()
            logger.warning(
                "recovery_attempt_failed",
                engine_name=engine.engine_name,
                page_number=page_number,
                attempt=attempt,
                max_attempts=max_attempts,
                retry_in_seconds=backoff,
                error=error.message,
            )
            await asyncio.sleep(backoff)

    def _apply_text(
        self,
        job: ExtractionJob,
        page_number: int,
        text: str,
        tier: ExtractionTier,
        engine: RecoveryEngine,
    ) -> None:
        """Re-score recovered text and keep it if it is no worse."""
        previous = job.page_results[page_number].report
        report = analyze_page_quality(text if isinstance(text, str) else "", page_number, self.thresholds)
        self._observe([report], tier)

        if job.merge(page_number, text, report, tier):
            self._count(tier, engine, RecoveryOutcome.IMPROVED)
            logger.info(
                "page_recovered",
                page_number=page_number,
                tier=tier.value,
                previous_score=previous.quality_score,
                quality_score=report.quality_score,
                needs_vision_fallback=report.needs_vision_fallback,
            )
            return

        self._count(tier, engine, RecoveryOutcome.NOT_IMPROVED)
        if previous.needs_vision_fallback:
            job.flag(
                page_number,
                recovery_failed_issue(tier, f"recovered text scored {report.quality_score}"),
            )
        logger.info(
            "page_recovery_not_improved",
            page_number=page_number,
            tier=tier.value,
            previous_score=previous.quality_score,
            quality_score=report.quality_score,
        )

    async def _engine_ready(
        self,
        engine: Optional[RecoveryEngine],
        tier: ExtractionTier,
        deadline_at: Optional[float],
    ) -> bool:
        """
        Health-check the engine, bounded by the per-call timeout.
        Raises asyncio.TimeoutError if the recovery deadline runs out first.
        """
        if engine is None:
            logger.warning("recovery_engine_missing", tier=tier.value)
            return False

        timeout = self.settings.RECOVERY_CALL_TIMEOUT_SECONDS
        remaining = self._remaining(deadline_at)
        deadline_bound = remaining is not None and remaining < timeout
        try:
            healthy = await asyncio.wait_for(
                engine.health_check(), timeout=remaining if deadline_bound else timeout,
            )
        except asyncio.TimeoutError:
            if deadline_bound:
                raise
            logger.warning(
                "recovery_health_check_timed_out",
                tier=tier.value,
                engine_name=engine.engine_name,
                timeout_seconds=timeout,
            )
            healthy = False
        except Exception:
            logger.warning("recovery_health_check_crashed", tier=tier.value, engine_name=engine.engine_name, exc_info=True)
            healthy = False
        if not healthy:
            logger.warning("recovery_engine_unhealthy", tier=tier.value, engine_name=engine.engine_name)
            self._count(tier, engine, RecoveryOutcome.UNREACHABLE)
        return healthy

    def _flag_timed_out(self, job: ExtractionJob, pages: list[int], tier: ExtractionTier) -> None:
        for page_number in pages:
            job.flag(page_number, recovery_timed_out_issue(tier))
        logger.warning("recovery_deadline_expired", tier=tier.value, abandoned_pages=pages)

    @staticmethod
    async def _abandon(tasks: set[asyncio.Task]) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _remaining(deadline_at: Optional[float]) -> Optional[float]:
        if deadline_at is None:
            return None
        return max(0.0, deadline_at - asyncio.get_running_loop().time())

    def _expired(self, deadline_at: Optional[float]) -> bool:
        remaining = self._remaining(deadline_at)
        return remaining is not None and remaining <= 0

    @staticmethod
    def _observe(reports, tier: ExtractionTier) -> None:
        for report in reports:
            pages_analyzed_total.labels(
                needs_fallback=str(report.needs_vision_fallback).lower(),
            ).inc()
            page_quality_scores.labels(tier=tier.value).observe(report.quality_score)

    @staticmethod
    def _count(tier: ExtractionTier, engine: RecoveryEngine, outcome: RecoveryOutcome) -> None:
        recovery_calls_total.labels(
            tier=tier.value,
            engine_name=engine.engine_name,
            outcome=outcome.value,
        ).inc()

    def _store(self, result: ExtractionResult) -> None:
        if self.report_store is None:
            return
        record = ExtractionRecord(
            document_id=result.document_id,
            run_id=result.run_id,
            status=result.status,
            tier_attempted=result.tier_attempted,
            initial_report=result.initial_report,
            final_report=result.report,
            recovered_pages=result.recovered_pages,
            duration_ms=result.duration_ms,
        )
        try:
            self.report_store.save(record)
        except OSError as e:
            logger.error("report_store_failed", error=str(e), exc_info=True)


class DocumentPipeline:
    """
    Convenience entry point for a PDF on disk: pdfplumber text layer, then
    tiered recovery with Tesseract.
    """

    def __init__(
        self,
        text_layer: Optional[TextLayerEngine] = None,
        orchestrator: Optional[ExtractionOrchestrator] = None,
    ):
        if text_layer is None:
            text_layer = PdfPlumberEngine()
        if orchestrator is None:
            orchestrator = ExtractionOrchestrator(
                vision_engine=TesseractEngine(cost_per_page_usd=default_settings.VISION_COST_PER_PAGE_USD),
                ocr_engine=TesseractEngine(),
            )
        self.text_layer = text_layer
        self.orchestrator = orchestrator

    async def process(
        self,
        pdf_path: str,
        document_id: Optional[str] = None,
        deadline_seconds: Optional[float] = None,
        escalate_to_full_ocr: Optional[bool] = None,
    ) -> ExtractionResult:
        """Extract the text layer off the event loop, then run recovery."""
        logger.info("pipeline_started", pdf_path=str(pdf_path), document_id=document_id)
        page_texts = await asyncio.to_thread(self.text_layer.extract_page_texts, pdf_path)
        return await self.orchestrator.run_extraction(
            pdf_path,
            page_texts,
            document_id=document_id,
            deadline_seconds=deadline_seconds,
            escalate_to_full_ocr=escalate_to_full_ocr,
        )
