"""
WasteWatch AI - Crowdsource Module
Citizen garbage reports, AI judgement, validation and rewards.
"""

from wastewatch.crowdsource.report_handler import (
    ReportHandler,
    Report,
    ReportStatus,
    Classification,
    Severity,
    check_transition,
    priority_for_severity,
)
from wastewatch.crowdsource.photo_analyzer import (
    PhotoAnalyzer,
    IntakeJudgement,
    ComparisonJudgement,
    ParsedResponse,
    parse_oracle_response,
    infer_classification,
)
from wastewatch.crowdsource.validation import (
    IntakeValidator,
    IntakeDecision,
    CleanupVerifier,
    CleanupDecision,
    decide_intake,
    decide_cleanup,
)
from wastewatch.crowdsource.rewards import RewardLedger

__all__ = [
    # Report Handler
    "ReportHandler",
    "Report",
    "ReportStatus",
    "Classification",
    "Severity",
    "check_transition",
    "priority_for_severity",
    # Photo Analyzer
    "PhotoAnalyzer",
    "IntakeJudgement",
    "ComparisonJudgement",
    "ParsedResponse",
    "parse_oracle_response",
    "infer_classification",
    # Validation
    "IntakeValidator",
    "IntakeDecision",
    "CleanupVerifier",
    "CleanupDecision",
    "decide_intake",
    "decide_cleanup",
    # Rewards
    "RewardLedger",
]
