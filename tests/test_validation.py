"""
Tests for intake decisions and cleanup verification
"""
import pytest

from wastewatch.crowdsource.photo_analyzer import ComparisonJudgement, IntakeJudgement
from wastewatch.crowdsource.report_handler import ReportStatus
from wastewatch.crowdsource.validation import (
    CleanupVerifier,
    IntakeValidator,
    build_location_validation,
    decide_cleanup,
    decide_intake,
)


def intake(**overrides):
    answer = {
        "imageValid": True,
        "isRealPhoto": True,
        "wasteDetected": "yes",
        "wasteType": "plastic",
        "classification": "dry",
        "severity": "yellow",
        "isFake": False,
        "confidence": 0.9,
    }
    answer.update(overrides)
    return IntakeJudgement.model_validate(answer)


def comparison(**overrides):
    answer = {
        "sameLocation": True,
        "cleaned": True,
        "cleanlinessLevel": "mostly clean",
        "remainingWaste": False,
        "afterIsCleaner": True,
        "suspicious": False,
    }
    answer.update(overrides)
    return ComparisonJudgement.model_validate(answer)


class TestDecideIntake:
    """Test suite for the intake decision table."""

    def test_accepted(self):
        decision = decide_intake(intake())
        assert decision.status == ReportStatus.ASSIGNED
        assert decision.priority == 2

    def test_fake_wins_over_everything(self):
        decision = decide_intake(intake(isFake=True, imageValid=False, wasteDetected="no"))
        assert decision.status == ReportStatus.FAKE

    def test_invalid_image(self):
        assert decide_intake(intake(imageValid=False)).status == ReportStatus.INVALID

    def test_not_a_real_photo(self):
        assert decide_intake(intake(isRealPhoto=False)).status == ReportStatus.INVALID

    def test_no_waste(self):
        assert decide_intake(intake(wasteDetected="no")).status == ReportStatus.NO_WASTE

    def test_malformed_waste_detected_is_no_waste(self):
        assert decide_intake(intake(wasteDetected="maybe")).status == ReportStatus.NO_WASTE

    def test_confidence_must_exceed_threshold(self):
        assert decide_intake(intake(confidence=0.6)).status == ReportStatus.PENDING
        assert decide_intake(intake(confidence=0.61)).status == ReportStatus.ASSIGNED

    def test_unknown_image_validity_stays_pending(self):
        assert decide_intake(intake(imageValid=None)).status == ReportStatus.PENDING

    @pytest.mark.parametrize("severity,priority", [
        ("red", 1),
        ("yellow", 2),
        ("green", 3),
        ("none", 3),
    ])
    def test_priority_from_severity(self, severity, priority):
        assert decide_intake(intake(severity=severity)).priority == priority


class TestDecideCleanup:
    """Test suite for the cleanup decision table."""

    def test_verified(self):
        decision = decide_cleanup(comparison())
        assert decision.verified
        assert decision.failed_checks == []

    def test_missing_after_is_cleaner_still_verifies(self):
        assert decide_cleanup(comparison(afterIsCleaner=None)).verified

    @pytest.mark.parametrize("overrides", [
        {"sameLocation": False},
        {"sameLocation": None},
        {"cleaned": False},
        {"cleanlinessLevel": "not clean"},
        {"remainingWaste": True},
        {"remainingWaste": None},
        {"afterIsCleaner": False},
        {"suspicious": True},
    ])
    def test_any_failed_check_leaves_cleaned(self, overrides):
        decision = decide_cleanup(comparison(**overrides))
        assert decision.status == ReportStatus.CLEANED
        assert len(decision.failed_checks) == 1

    def test_reason_lists_failures(self):
        decision = decide_cleanup(comparison(suspicious=True, suspiciousReason="after shows more waste"))
        assert "after shows more waste" in decision.reason


class TestLocationValidation:
    """Test suite for the location audit record."""

    def test_complete_location(self, handler, submitted_at):
        report = handler.create_report(
            "c1", "gs://b/x_before.jpg", 12.9, 77.6,
            address="MG Road", created_at=submitted_at,
        )
        report.location["timestamp"] = submitted_at.isoformat()
        report.location["accuracy"] = 12

        audit = build_location_validation(report, submitted_at)

        assert audit == {
            "isValid": True,
            "hasAddress": True,
            "timestamp": submitted_at.isoformat(),
            "suspicious": False,
        }

    def test_inaccurate_location_is_suspicious(self, handler, submitted_at):
        report = handler.create_report("c1", "gs://b/x_before.jpg", 12.9, 77.6)
        report.location["accuracy"] = "350"

        audit = build_location_validation(report, submitted_at)

        assert audit["suspicious"] is True
        assert audit["hasAddress"] is False


class TestIntakeValidator:
    """Test suite for applying intake decisions."""

    def test_accept_awards_citizen_once(self, handler, ledger, store):
        report = handler.create_report("citizen-1", "gs://b/r/1_before.jpg", 12.9, 77.6)
        validator = IntakeValidator(handler, ledger)

        first = validator.apply(report, intake(severity="red"), event_key="b/r/1_before.jpg#1")
        second = validator.apply(report, intake(severity="red"), event_key="b/r/1_before.jpg#1")

        assert first.applied and first.rewarded
        assert not second.applied

        stored = handler.get_report(report.id)
        assert stored.status == ReportStatus.ASSIGNED
        assert stored.priority == 1
        assert stored.rewards == {"intake_citizen": "awarded"}
        assert stored.data["aiAnalyzedAt"]
        assert stored.data["assignedAt"]
        assert len(stored.history) == 2

        citizen = store.get("users", "citizen-1")
        assert citizen["points"] == 2
        assert citizen["totalReports"] == 1

    def test_rejection_awards_nothing(self, handler, ledger, store):
        report = handler.create_report("citizen-1", "gs://b/r/1_before.jpg", 12.9, 77.6)

        decision = IntakeValidator(handler, ledger).apply(report, intake(isFake=True), "k#1")

        assert decision.applied and not decision.rewarded
        assert handler.get_report(report.id).status == ReportStatus.FAKE
        assert store.get("users", "citizen-1") is None

    def test_low_confidence_stays_pending_and_counts_attempt(self, handler, ledger):
        report = handler.create_report("citizen-1", "gs://b/r/1_before.jpg", 12.9, 77.6)

        decision = IntakeValidator(handler, ledger).apply(report, intake(confidence=0.3), "k#1")

        stored = handler.get_report(report.id)
        assert decision.applied
        assert stored.status == ReportStatus.PENDING
        assert stored.ai_attempts == 1
        assert stored.processed_events == ["k#1"]

    def test_stale_attempt_count_loses_the_write(self, handler, ledger):
        report = handler.create_report("citizen-1", "gs://b/r/1_before.jpg", 12.9, 77.6)
        validator = IntakeValidator(handler, ledger)
        validator.apply(report, intake(confidence=0.3), event_key=None)

        # Same stale snapshot, no event key: the attempt guard rejects it
        decision = validator.apply(report, intake(), event_key=None)

        assert not decision.applied
        assert handler.get_report(report.id).status == ReportStatus.PENDING


class TestCleanupVerifier:
    """Test suite for applying cleanup verification."""

    def assigned_report(self, handler, sweeper="sweeper-1"):
        report = handler.create_report(
            "citizen-1", "gs://b/r/1_before.jpg", 12.9, 77.6,
            status="assigned", assignedSweeper=sweeper,
        )
        return report

    def test_verified_awards_both_once(self, handler, ledger, store):
        report = self.assigned_report(handler)
        verifier = CleanupVerifier(handler, ledger)

        first = verifier.apply(report, comparison(), "gs://b/r/1_after.jpg", "b/r/1_after.jpg#1")
        second = verifier.apply(report, comparison(), "gs://b/r/1_after.jpg", "b/r/1_after.jpg#1")

        assert first.applied and first.rewarded
        assert not second.applied

        stored = handler.get_report(report.id)
        assert stored.status == ReportStatus.VERIFIED
        assert stored.image_after == "gs://b/r/1_after.jpg"
        assert stored.data["verifiedAt"]
        assert stored.rewards == {"cleanup_citizen": "awarded", "cleanup_sweeper": "awarded"}

        assert store.get("users", "citizen-1")["points"] == 2
        sweeper = store.get("users", "sweeper-1")
        assert sweeper["points"] == 2
        assert sweeper["totalCleaned"] == 1

    def test_not_verified_moves_to_cleaned_without_points(self, handler, ledger, store):
        report = self.assigned_report(handler)

        decision = CleanupVerifier(handler, ledger).apply(
            report, comparison(remainingWaste=True), "gs://b/r/1_after.jpg", "k#1"
        )

        assert decision.applied and not decision.rewarded
        stored = handler.get_report(report.id)
        assert stored.status == ReportStatus.CLEANED
        assert stored.data["cleanedAt"]
        assert store.get("users", "sweeper-1") is None

    def test_resubmission_after_cleaned_can_verify(self, handler, ledger):
        report = self.assigned_report(handler)
        verifier = CleanupVerifier(handler, ledger)
        verifier.apply(report, comparison(cleaned=False), "gs://b/r/1_after.jpg", "k#1")

        cleaned = handler.get_report(report.id)
        decision = verifier.apply(cleaned, comparison(), "gs://b/r/2_after.jpg", "k#2")

        assert decision.verified and decision.applied
        assert handler.get_report(report.id).status == ReportStatus.VERIFIED

    def test_verified_without_sweeper_pays_citizen_only(self, handler, ledger, store):
        report = self.assigned_report(handler, sweeper=None)

        decision = CleanupVerifier(handler, ledger).apply(report, comparison(), None, "k#1")

        assert decision.rewarded
        assert store.get("users", "citizen-1")["points"] == 2
        assert handler.get_report(report.id).rewards == {"cleanup_citizen": "awarded"}
