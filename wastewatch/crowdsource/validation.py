"""
Report validation for crowdsourced garbage reports
Intake decisions on before photos and cleanup verification on after photos
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from wastewatch.core.constants import (
    CLEANUP_REWARD_POINTS,
    INTAKE_CONFIDENCE_THRESHOLD,
    INTAKE_REWARD_POINTS,
    MILESTONE_CLEANUP_CITIZEN,
    MILESTONE_CLEANUP_SWEEPER,
    MILESTONE_INTAKE_CITIZEN,
)
from wastewatch.core.geo_utils import is_location_suspicious
from wastewatch.crowdsource.photo_analyzer import ComparisonJudgement, IntakeJudgement
from wastewatch.crowdsource.report_handler import (
    CLEANUP_STATUSES,
    INTAKE_STATUSES,
    Report,
    ReportHandler,
    ReportStatus,
    parse_timestamp,
    priority_for_severity,
    to_iso,
    utc_now,
)
from wastewatch.crowdsource.rewards import (
    COUNTER_TOTAL_CLEANED,
    COUNTER_TOTAL_REPORTS,
    RewardLedger,
)

logger = logging.getLogger(__name__)


@dataclass
class IntakeDecision:
    """Outcome of judging a before photo."""
    status: ReportStatus
    reason: str
    priority: int

    # Filled in by IntakeValidator.apply
    applied: bool = False
    rewarded: bool = False

    @property
    def accepted(self) -> bool:
        return self.status == ReportStatus.ASSIGNED


@dataclass
class CleanupDecision:
    """Outcome of judging a before/after pair."""
    status: ReportStatus
    failed_checks: List[str] = field(default_factory=list)

    applied: bool = False
    rewarded: bool = False

    @property
    def verified(self) -> bool:
        return self.status == ReportStatus.VERIFIED

    @property
    def reason(self) -> str:
        if self.verified:
            return "Cleanup verified by AI"
        return "Cleaning not fully verified by AI: " + ", ".join(self.failed_checks)


def decide_intake(judgement: IntakeJudgement) -> IntakeDecision:
    """
    Decide the status of a report from its intake judgement.

    Rules are applied in order and the first match wins:
    fake, invalid (image or photo explicitly rejected), no waste, accepted
    (every signal positive and confidence above threshold), else pending.
    """
    priority = priority_for_severity(judgement.severity)

    if judgement.is_fake:
        return IntakeDecision(ReportStatus.FAKE, "Image flagged as fake or stock photo", priority)

    if judgement.image_valid is False or judgement.is_real_photo is False:
        return IntakeDecision(ReportStatus.INVALID, "Image is not a valid real photo", priority)

    if not judgement.has_waste:
        return IntakeDecision(ReportStatus.NO_WASTE, "No waste detected in image", priority)

    if (
        judgement.image_valid is True
        and judgement.is_real_photo is True
        and judgement.confidence > INTAKE_CONFIDENCE_THRESHOLD
    ):
        return IntakeDecision(ReportStatus.ASSIGNED, "Valid waste report", priority)

    return IntakeDecision(
        ReportStatus.PENDING,
        f"Uncertain judgement (confidence {judgement.confidence:.2f}), kept pending",
        priority,
    )


def decide_cleanup(judgement: ComparisonJudgement) -> CleanupDecision:
    """
    Decide whether a cleanup is verified.

    Verified only when every check passes; unknown values fail the checks
    that require an explicit answer.
    """
    failed = []
    if judgement.same_location is not True:
        failed.append("not the same location")
    if judgement.cleaned is not True:
        failed.append("not cleaned")
    if judgement.not_clean:
        failed.append("area not clean")
    if judgement.remaining_waste is not False:
        failed.append("waste remaining")
    if judgement.after_is_cleaner is False:
        failed.append("after photo not cleaner")
    if judgement.suspicious is True:
        failed.append(f"suspicious: {judgement.suspicious_reason or 'no reason given'}")

    status = ReportStatus.CLEANED if failed else ReportStatus.VERIFIED
    return CleanupDecision(status=status, failed_checks=failed)


def build_location_validation(report: Report, upload_time: datetime) -> Dict[str, Any]:
    """
    Informational audit of the report's captured location.

    Never affects the intake decision.
    """
    location = report.location
    timestamp = location.get("timestamp")
    accuracy = location.get("accuracy")
    try:
        accuracy_m = float(accuracy) if accuracy is not None else None
    except (TypeError, ValueError):
        accuracy_m = None

    return {
        "isValid": bool(location.get("lat") and location.get("lng")),
        "hasAddress": bool(location.get("address")),
        "timestamp": to_iso(timestamp) if isinstance(timestamp, datetime) else timestamp,
        "suspicious": is_location_suspicious(upload_time, parse_timestamp(timestamp), accuracy_m),
    }


class IntakeValidator:
    """
    Applies intake decisions to reports.

    Usage:
        validator = IntakeValidator(handler, ledger)
        decision = validator.apply(report, judgement, event_key="bucket/path#1")
    """

    def __init__(self, handler: ReportHandler, ledger: RewardLedger):
        self.handler = handler
        self.ledger = ledger

    def apply(
        self,
        report: Report,
        judgement: IntakeJudgement,
        event_key: Optional[str] = None
    ) -> IntakeDecision:
        """
        Persist the intake outcome and award the citizen once on acceptance.

        The write is guarded on the report still being analysable, the event
        not having been applied and the attempt count being unchanged; losing
        that guard makes this a no-op.
        """
        decision = decide_intake(judgement)
        now = utc_now()

        fields = judgement.to_fields()
        fields.update({
            "priority": decision.priority,
            "aiAnalyzedAt": to_iso(now),
            "aiAttempts": report.ai_attempts + 1,
            "locationValidation": build_location_validation(report, report.created_at or now),
        })

        milestones = [MILESTONE_INTAKE_CITIZEN] if decision.accepted else []
        expected_attempts = report.ai_attempts

        decision.applied = self.handler.transition(
            report,
            decision.status,
            fields=fields,
            note=decision.reason,
            details={
                "confidence": judgement.confidence,
                "classification": judgement.classification,
                "severity": judgement.severity,
                "wasteType": judgement.waste_type,
            },
            event_key=event_key,
            expected_statuses=INTAKE_STATUSES,
            reward_milestones=milestones,
            extra_check=lambda current: int(current.get("aiAttempts") or 0) == expected_attempts,
        )

        if not decision.applied:
            return decision

        logger.info(f"Report {report.id}: {decision.status.value} ({decision.reason})")

        if decision.accepted:
            decision.rewarded = self.ledger.award_milestone(
                report.id,
                MILESTONE_INTAKE_CITIZEN,
                report.citizen_id,
                INTAKE_REWARD_POINTS,
                counter=COUNTER_TOTAL_REPORTS,
            )
        else:
            logger.info(f"No points awarded for report {report.id} ({decision.status.value})")

        return decision


class CleanupVerifier:
    """
    Applies cleanup verification results to reports.

    Usage:
        verifier = CleanupVerifier(handler, ledger)
        decision = verifier.apply(report, judgement, after_ref, event_key)
    """

    def __init__(self, handler: ReportHandler, ledger: RewardLedger):
        self.handler = handler
        self.ledger = ledger

    def apply(
        self,
        report: Report,
        judgement: ComparisonJudgement,
        after_ref: Optional[str] = None,
        event_key: Optional[str] = None
    ) -> CleanupDecision:
        """
        Persist the comparison outcome and, when verified, award the citizen
        and the assigned sweeper once each.
        """
        decision = decide_cleanup(judgement)

        fields = judgement.to_fields()
        if after_ref and not report.image_after:
            fields["imageAfter"] = after_ref

        milestones = []
        if decision.verified:
            milestones.append(MILESTONE_CLEANUP_CITIZEN)
            if report.assigned_sweeper:
                milestones.append(MILESTONE_CLEANUP_SWEEPER)
            else:
                logger.warning(f"Report {report.id} verified without an assigned sweeper")

        decision.applied = self.handler.transition(
            report,
            decision.status,
            fields=fields,
            note=decision.reason,
            details={
                "cleanlinessLevel": judgement.cleanliness_level,
                "cleaningQuality": judgement.cleaning_quality,
                "confidence": judgement.confidence,
                "afterIsCleaner": judgement.after_is_cleaner,
                "suspicious": judgement.suspicious,
            },
            event_key=event_key,
            expected_statuses=CLEANUP_STATUSES,
            reward_milestones=milestones,
        )

        if not decision.applied:
            return decision

        if not decision.verified:
            logger.warning(f"Report {report.id}: {decision.reason}; no points awarded")
            return decision

        citizen_paid = self.ledger.award_milestone(
            report.id,
            MILESTONE_CLEANUP_CITIZEN,
            report.citizen_id,
            CLEANUP_REWARD_POINTS,
        )
        sweeper_paid = True
        if MILESTONE_CLEANUP_SWEEPER in milestones:
            sweeper_paid = self.ledger.award_milestone(
                report.id,
                MILESTONE_CLEANUP_SWEEPER,
                report.assigned_sweeper,
                CLEANUP_REWARD_POINTS,
                counter=COUNTER_TOTAL_CLEANED,
            )

        decision.rewarded = citizen_paid and sweeper_paid
        logger.info(f"Report {report.id} verified")
        return decision
