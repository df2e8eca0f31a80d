"""
Tests for the report model, state machine and repository
"""
import pytest
from datetime import datetime, timedelta, timezone

from wastewatch.core.errors import IllegalTransitionError
from wastewatch.crowdsource.report_handler import (
    ReportStatus,
    can_transition,
    check_transition,
    parse_timestamp,
    priority_for_severity,
)


class TestStateMachine:
    """Test suite for the transition table."""

    @pytest.mark.parametrize("old,new", [
        (ReportStatus.PENDING, ReportStatus.ASSIGNED),
        (ReportStatus.PENDING, ReportStatus.PENDING),
        (ReportStatus.PENDING, ReportStatus.AI_ERROR),
        (ReportStatus.AI_ERROR, ReportStatus.FAKE),
        (ReportStatus.AI_ERROR, ReportStatus.ASSIGNED),
        (ReportStatus.ASSIGNED, ReportStatus.CLEANED),
        (ReportStatus.ASSIGNED, ReportStatus.VERIFIED),
        (ReportStatus.CLEANED, ReportStatus.CLEANED),
        (ReportStatus.CLEANED, ReportStatus.VERIFIED),
    ])
    def test_allowed(self, old, new):
        assert can_transition(old, new)
        check_transition(old, new)

    @pytest.mark.parametrize("old,new", [
        (ReportStatus.FAKE, ReportStatus.ASSIGNED),
        (ReportStatus.INVALID, ReportStatus.PENDING),
        (ReportStatus.NO_WASTE, ReportStatus.ASSIGNED),
        (ReportStatus.VERIFIED, ReportStatus.CLEANED),
        (ReportStatus.ASSIGNED, ReportStatus.PENDING),
        (ReportStatus.CLEANED, ReportStatus.ASSIGNED),
        (ReportStatus.PENDING, ReportStatus.VERIFIED),
    ])
    def test_illegal(self, old, new):
        assert not can_transition(old, new)
        with pytest.raises(IllegalTransitionError):
            check_transition(old, new)

    def test_terminal_statuses(self):
        terminal = {s for s in ReportStatus if s.is_terminal}
        assert terminal == {
            ReportStatus.FAKE,
            ReportStatus.INVALID,
            ReportStatus.NO_WASTE,
            ReportStatus.VERIFIED,
        }

    def test_priority_for_severity(self):
        assert priority_for_severity("red") == 1
        assert priority_for_severity("YELLOW") == 2
        assert priority_for_severity("green") == 3
        assert priority_for_severity(None) == 3


class TestParseTimestamp:
    """Test suite for stored timestamp parsing."""

    def test_iso_string(self):
        parsed = parse_timestamp("2026-03-14T09:30:00Z")
        assert parsed == datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        parsed = parse_timestamp(1773480600000)
        assert parsed == datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

    def test_seconds_mapping(self):
        parsed = parse_timestamp({"seconds": 1773480600, "nanoseconds": 0})
        assert parsed == datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self):
        assert parse_timestamp(datetime(2026, 3, 14)).tzinfo == timezone.utc

    def test_garbage(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None


class TestReportHandler:
    """Test suite for ReportHandler."""

    def test_create_report(self, handler, submitted_at):
        report = handler.create_report(
            "citizen-1", "gs://b/reports/citizen-1/1_before.jpg", 12.9, 77.6,
            address="MG Road", created_at=submitted_at,
        )

        assert report.status == ReportStatus.PENDING
        assert report.location == {"lat": 12.9, "lng": 77.6, "address": "MG Road"}
        assert report.created_at == submitted_at
        assert len(report.history) == 1
        assert report.history[0]["status"] == "pending"

    def test_find_by_image_tries_each_reference(self, handler):
        report = handler.create_report(
            "citizen-1", "https://storage.googleapis.com/b/reports/citizen-1/1_before.jpg", 1.0, 2.0
        )

        found = handler.find_by_image("imageBefore", [
            "gs://b/reports/citizen-1/1_before.jpg",
            "https://storage.googleapis.com/b/reports/citizen-1/1_before.jpg",
        ])

        assert found.id == report.id
        assert handler.find_by_image("imageBefore", ["gs://b/other.jpg"]) is None

    def test_get_recent_reports_newest_first(self, handler, submitted_at):
        for i in range(3):
            handler.create_report(
                f"c{i}", f"gs://b/{i}_before.jpg", 1.0, 2.0,
                report_id=f"r{i}", created_at=submitted_at + timedelta(minutes=i),
            )

        recent = handler.get_recent_reports([ReportStatus.PENDING], limit=2)

        assert [r.id for r in recent] == ["r2", "r1"]

    def test_transition_sets_first_entry_timestamp_once(self, handler):
        report = handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0, status="assigned")

        assert handler.transition(report, ReportStatus.CLEANED, event_key="e#1")
        first = handler.get_report(report.id)
        assert handler.transition(first, ReportStatus.CLEANED, event_key="e#2")
        second = handler.get_report(report.id)

        assert second.data["cleanedAt"] == first.data["cleanedAt"]
        assert second.processed_events == ["e#1", "e#2"]
        assert [h["status"] for h in second.history] == ["pending", "cleaned", "cleaned"]

    def test_transition_is_idempotent_per_event(self, handler):
        report = handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0)

        assert handler.transition(report, ReportStatus.PENDING, event_key="e#1") is True
        assert handler.transition(report, ReportStatus.PENDING, event_key="e#1") is False
        assert len(handler.get_report(report.id).history) == 2

    def test_transition_refuses_claimed_milestone(self, handler):
        report = handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0)
        handler.set_reward_state(report.id, "intake_citizen", "awarded")

        applied = handler.transition(
            report, ReportStatus.ASSIGNED, reward_milestones=["intake_citizen"],
        )

        assert applied is False

    def test_transition_rejects_illegal_change(self, handler):
        report = handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0, status="verified")

        with pytest.raises(IllegalTransitionError):
            handler.transition(report, ReportStatus.CLEANED)

    def test_record_error_moves_to_ai_error(self, handler):
        report = handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0)

        handler.record_error(
            report, {"aiError": "boom"},
            expected_statuses=[ReportStatus.PENDING, ReportStatus.AI_ERROR],
            new_status=ReportStatus.AI_ERROR,
        )

        stored = handler.get_report(report.id)
        assert stored.status == ReportStatus.AI_ERROR
        assert stored.data["aiError"] == "boom"

    def test_record_error_never_touches_moved_report(self, handler):
        report = handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0, status="verified")

        applied = handler.record_error(
            report, {"aiComparisonError": "boom"},
            expected_statuses=[ReportStatus.ASSIGNED, ReportStatus.CLEANED],
            new_status=ReportStatus.CLEANED,
        )

        assert applied is False
        assert "aiComparisonError" not in handler.get_report(report.id).data

    def test_find_stuck_reports(self, handler):
        now = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
        old = now - timedelta(hours=30)
        handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0, report_id="old", created_at=old)
        handler.create_report("c2", "gs://b/2_before.jpg", 1.0, 2.0, report_id="fresh", created_at=now)
        handler.create_report(
            "c3", "gs://b/3_before.jpg", 1.0, 2.0,
            report_id="done", created_at=old, status="verified",
        )

        stuck = handler.find_stuck_reports(timedelta(hours=24), now=now)

        assert [r.id for r in stuck] == ["old"]

    def test_find_unsettled_rewards(self, handler):
        now = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
        old = now - timedelta(hours=2)
        handler.create_report(
            "c1", "gs://b/1_before.jpg", 1.0, 2.0, report_id="stale", created_at=old,
            status="assigned", rewards={"intake_citizen": "pending"},
        )
        handler.create_report(
            "c2", "gs://b/2_before.jpg", 1.0, 2.0, report_id="settled", created_at=old,
            status="verified",
            rewards={"intake_citizen": "awarded", "cleanup_citizen": "failed", "cleanup_sweeper": "awarded"},
        )
        handler.create_report(
            "c3", "gs://b/3_before.jpg", 1.0, 2.0, report_id="in-flight", created_at=now,
            status="assigned", rewards={"intake_citizen": "pending"},
        )

        unsettled = handler.find_unsettled_rewards(timedelta(minutes=30), now=now)

        assert [r.id for r in unsettled] == ["stale"]
        assert unsettled[0].pending_rewards == ["intake_citizen"]

    def test_statistics(self, handler):
        handler.create_report("c1", "gs://b/1_before.jpg", 1.0, 2.0)
        handler.create_report("c2", "gs://b/2_before.jpg", 1.0, 2.0, status="fake")

        stats = handler.get_statistics()

        assert stats["total_reports"] == 2
        assert stats["by_status"] == {"pending": 1, "fake": 1}
