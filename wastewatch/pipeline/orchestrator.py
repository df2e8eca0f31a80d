"""
Pipeline orchestrator
Entry points for before/after photo uploads and periodic maintenance
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from wastewatch.core.config import Settings, get_settings
from wastewatch.core.constants import MAX_INTAKE_ATTEMPTS, REWARD_SETTLE_AFTER
from wastewatch.core.errors import CorrelationMiss, WasteWatchError
from wastewatch.crowdsource.photo_analyzer import PhotoAnalyzer
from wastewatch.crowdsource.report_handler import (
    CLEANUP_STATUSES,
    INTAKE_STATUSES,
    Report,
    ReportHandler,
    ReportStatus,
    to_iso,
    utc_now,
)
from wastewatch.crowdsource.rewards import RewardLedger
from wastewatch.crowdsource.validation import CleanupVerifier, IntakeValidator
from wastewatch.database.connection import DatabaseConnection
from wastewatch.database.document_store import DocumentStore, SQLDocumentStore
from wastewatch.ingestion.gemini_client import GeminiClient
from wastewatch.ingestion.storage_client import StorageClient
from wastewatch.pipeline.correlation import ReportCorrelator
from wastewatch.pipeline.events import FinalizeEvent, UploadKind

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """How a pipeline invocation ended."""
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class PipelineResult:
    """Result of one pipeline invocation."""
    outcome: Outcome
    report_id: Optional[str] = None
    status: Optional[ReportStatus] = None
    message: str = ""
    error: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "report_id": self.report_id,
            "status": self.status.value if self.status else None,
            "message": self.message,
            "error": self.error,
        }


class PipelineOrchestrator:
    """
    Runs the intake and cleanup pipelines.

    Every entry point is safe under at-least-once delivery: a redelivered or
    concurrent event either loses the guarded report write and becomes a
    no-op, or finds the report no longer eligible. Nothing raised below the
    entry points escapes them; failures end as diagnostics on the report or
    as log lines.
    """

    def __init__(
        self,
        handler: ReportHandler,
        analyzer: PhotoAnalyzer,
        ledger: RewardLedger,
        correlator: Optional[ReportCorrelator] = None,
        stuck_after: timedelta = timedelta(hours=24)
    ):
        """
        Initialize orchestrator.

        Args:
            handler: Report repository
            analyzer: Image oracle adapter
            ledger: Reward ledger
            correlator: Upload-to-report matcher (default: legacy fallback on)
            stuck_after: Age at which a waiting report counts as stuck
        """
        self.handler = handler
        self.analyzer = analyzer
        self.ledger = ledger
        self.correlator = correlator or ReportCorrelator(handler)
        self.stuck_after = stuck_after

        self.intake = IntakeValidator(handler, ledger)
        self.verifier = CleanupVerifier(handler, ledger)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None
    ) -> "PipelineOrchestrator":
        """Wire the production pipeline from configuration."""
        settings = settings or get_settings()
        if store is None:
            db = DatabaseConnection(settings.database_url)
            db.create_tables()
            store = SQLDocumentStore(db)

        handler = ReportHandler(store, settings.reports_collection)
        analyzer = PhotoAnalyzer(
            storage=StorageClient(
                base_url=settings.storage_base_url,
                access_token=settings.storage_access_token,
                default_bucket=settings.default_bucket,
            ),
            oracle=GeminiClient(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                base_url=settings.gemini_base_url,
                max_retries=settings.oracle_max_retries,
            ),
        )
        return cls(
            handler=handler,
            analyzer=analyzer,
            ledger=RewardLedger(store, handler, settings.users_collection),
            correlator=ReportCorrelator(handler, legacy_fallback=settings.correlation_legacy_fallback),
            stuck_after=timedelta(hours=settings.stuck_report_hours),
        )

    def handle_finalize(self, event: FinalizeEvent) -> PipelineResult:
        """
        Route a finalize event to the right pipeline.

        Never raises.
        """
        kind = event.upload_kind
        if kind is None:
            logger.debug(f"Skipping {event.path}: not a before/after photo")
            return PipelineResult(Outcome.IGNORED, message="not a before/after photo")

        logger.info(f"Processing {kind.value} image gs://{event.bucket}/{event.path}")
        try:
            if kind == UploadKind.BEFORE:
                return self.on_before_upload(event)
            return self.on_after_upload(event)
        except WasteWatchError as e:
            logger.error(f"Pipeline failed for {event.path}: {e}")
            return PipelineResult(Outcome.FAILED, message=str(e), error=e.to_dict())
        except Exception as e:
            logger.exception(f"Unexpected error processing {event.path}: {e}")
            return PipelineResult(Outcome.FAILED, message=str(e))

    def on_before_upload(self, event: FinalizeEvent) -> PipelineResult:
        """Intake pipeline for a citizen's before photo."""
        report = self._locate(event, UploadKind.BEFORE)
        if report is None:
            return PipelineResult(Outcome.NOT_FOUND, message=f"no report for {event.path}")

        skipped = self._check_eligible(report, event, INTAKE_STATUSES)
        if skipped:
            return skipped

        return self._run_intake(report, event.storage_object.gs_url, event.event_key)

    def on_after_upload(self, event: FinalizeEvent) -> PipelineResult:
        """Cleanup pipeline for a sweeper's after photo."""
        report = self._locate(event, UploadKind.AFTER)
        if report is None:
            return PipelineResult(Outcome.NOT_FOUND, message=f"no report for {event.path}")

        skipped = self._check_eligible(report, event, CLEANUP_STATUSES)
        if skipped:
            return skipped

        after_ref = event.storage_object.gs_url
        if not report.image_before:
            logger.warning(f"Report {report.id} has no before image to compare against")
            return self._record_cleanup_error(
                report, after_ref, WasteWatchError("Report has no before image")
            )

        try:
            judgement = self.analyzer.compare_cleanup(report.image_before, after_ref)
            decision = self.verifier.apply(report, judgement, after_ref=after_ref, event_key=event.event_key)
        except Exception as e:
            return self._record_cleanup_error(
                report, after_ref, self._as_pipeline_error(e, "Before/after comparison", report)
            )

        if not decision.applied:
            return PipelineResult(Outcome.DUPLICATE, report.id, message="already applied")

        return PipelineResult(Outcome.APPLIED, report.id, decision.status, message=decision.reason)

    def rescan_pending(self, limit: Optional[int] = None) -> List[PipelineResult]:
        """
        Re-run intake for pending reports left undecided by a low-confidence
        judgement, up to MAX_INTAKE_ATTEMPTS analyses per report.
        """
        results = []
        for report in self.handler.get_recent_reports([ReportStatus.PENDING], limit=limit):
            if not 0 < report.ai_attempts < MAX_INTAKE_ATTEMPTS:
                continue
            if not report.image_before:
                continue

            logger.info(f"Re-analysing report {report.id} (attempt {report.ai_attempts + 1})")
            try:
                results.append(self._run_intake(report, report.image_before, event_key=None))
            except Exception as e:
                logger.exception(f"Rescan failed for report {report.id}: {e}")
                results.append(PipelineResult(Outcome.FAILED, report.id, message=str(e)))
        return results

    def find_stuck_reports(self, older_than: Optional[timedelta] = None) -> List[Report]:
        """Reports waiting in pending, cleaned or ai_error for too long."""
        stuck = self.handler.find_stuck_reports(older_than or self.stuck_after)
        for report in stuck:
            logger.warning(f"Report {report.id} stuck in {report.status.value}")
        return stuck

    def find_unsettled_rewards(self, older_than: Optional[timedelta] = None) -> List[Report]:
        """Reports whose reward awards never recorded an outcome."""
        unsettled = self.handler.find_unsettled_rewards(older_than or REWARD_SETTLE_AFTER)
        for report in unsettled:
            for milestone in report.pending_rewards:
                logger.warning(
                    f"Report {report.id} reward {milestone} still pending; reconcile user points manually"
                )
        return unsettled

    def _locate(self, event: FinalizeEvent, kind: UploadKind) -> Optional[Report]:
        try:
            correlation = self.correlator.locate(event, kind)
        except CorrelationMiss as e:
            logger.warning(str(e))
            return None
        logger.info(f"Matched {event.path} to report {correlation.report.id} ({correlation.strategy})")
        return correlation.report

    @staticmethod
    def _check_eligible(report: Report, event: FinalizeEvent, statuses) -> Optional[PipelineResult]:
        if report.has_processed(event.event_key):
            logger.info(f"Event {event.event_key} already applied to report {report.id}")
            return PipelineResult(Outcome.DUPLICATE, report.id, report.status, "already applied")
        if report.status not in statuses:
            logger.info(f"Report {report.id} is {report.status.value}; nothing to do")
            return PipelineResult(Outcome.DUPLICATE, report.id, report.status, "not eligible")
        return None

    def _run_intake(self, report: Report, image_ref: str, event_key: Optional[str]) -> PipelineResult:
        try:
            judgement = self.analyzer.analyze_intake(image_ref)
            decision = self.intake.apply(report, judgement, event_key=event_key)
        except Exception as e:
            return self._record_intake_error(report, self._as_pipeline_error(e, "AI analysis", report))

        if not decision.applied:
            return PipelineResult(Outcome.DUPLICATE, report.id, message="already applied")

        return PipelineResult(Outcome.APPLIED, report.id, decision.status, message=decision.reason)

    @staticmethod
    def _as_pipeline_error(error: Exception, stage: str, report: Report) -> WasteWatchError:
        if isinstance(error, WasteWatchError):
            logger.error(f"{stage} failed for report {report.id}: {error}")
            return error
        logger.exception(f"Unexpected error in {stage.lower()} of report {report.id}: {error}")
        return WasteWatchError(str(error), original_exception=error)

    def _record_intake_error(self, report: Report, error: WasteWatchError) -> PipelineResult:
        self.handler.record_error(
            report,
            {
                "aiError": error.context.message,
                "aiErrorType": error.context.error_type.value,
                "aiErrorAt": to_iso(utc_now()),
            },
            expected_statuses=INTAKE_STATUSES,
            new_status=ReportStatus.AI_ERROR,
            note="AI analysis failed",
        )
        return PipelineResult(Outcome.FAILED, report.id, ReportStatus.AI_ERROR, str(error), error.to_dict())

    def _record_cleanup_error(self, report: Report, after_ref: str, error: WasteWatchError) -> PipelineResult:
        fields = {
            "aiComparisonError": error.context.message,
            "aiComparisonErrorAt": to_iso(utc_now()),
        }
        if not report.image_after:
            fields["imageAfter"] = after_ref

        self.handler.record_error(
            report,
            fields,
            expected_statuses=CLEANUP_STATUSES,
            new_status=ReportStatus.CLEANED,
            note="AI comparison failed",
        )
        return PipelineResult(Outcome.FAILED, report.id, ReportStatus.CLEANED, str(error), error.to_dict())
