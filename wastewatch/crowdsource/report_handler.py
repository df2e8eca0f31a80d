"""
Garbage report model and repository
Report lifecycle, state machine and guarded persistence of transitions
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

from wastewatch.core.constants import (
    DEFAULT_PRIORITY,
    REWARD_PENDING,
    SEVERITY_PRIORITY,
)
from wastewatch.core.errors import IllegalTransitionError
from wastewatch.core.geo_utils import Point
from wastewatch.database.document_store import DocumentStore

logger = logging.getLogger(__name__)


class ReportStatus(str, Enum):
    """Status of a garbage report."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    FAKE = "fake"
    INVALID = "invalid"
    NO_WASTE = "no_waste"
    CLEANED = "cleaned"
    VERIFIED = "verified"
    AI_ERROR = "ai_error"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]


class Classification(str, Enum):
    """Waste composition judged from the before photo."""
    DRY = "dry"
    WET = "wet"
    MIXED = "mixed"
    NONE = "none"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Qualitative urgency of a report."""
    RED = "red"
    YELLOW = "yellow"
    GREEN = "green"
    NONE = "none"


_INTAKE_OUTCOMES = frozenset({
    ReportStatus.PENDING,
    ReportStatus.ASSIGNED,
    ReportStatus.FAKE,
    ReportStatus.INVALID,
    ReportStatus.NO_WASTE,
    ReportStatus.AI_ERROR,
})

ALLOWED_TRANSITIONS: Dict[ReportStatus, FrozenSet[ReportStatus]] = {
    ReportStatus.PENDING: _INTAKE_OUTCOMES,
    ReportStatus.AI_ERROR: _INTAKE_OUTCOMES,
    ReportStatus.ASSIGNED: frozenset({ReportStatus.CLEANED, ReportStatus.VERIFIED}),
    ReportStatus.CLEANED: frozenset({ReportStatus.CLEANED, ReportStatus.VERIFIED}),
    ReportStatus.FAKE: frozenset(),
    ReportStatus.INVALID: frozenset(),
    ReportStatus.NO_WASTE: frozenset(),
    ReportStatus.VERIFIED: frozenset(),
}

# Statuses a before-photo analysis may start from
INTAKE_STATUSES = (ReportStatus.PENDING, ReportStatus.AI_ERROR)

# Statuses an after-photo comparison may start from
CLEANUP_STATUSES = (ReportStatus.ASSIGNED, ReportStatus.CLEANED)

# Reports still waiting for a sweeper
OPEN_STATUSES = (ReportStatus.PENDING, ReportStatus.ASSIGNED)

# Set once, on first entry into the status
STATUS_TIMESTAMP_FIELDS: Dict[ReportStatus, str] = {
    ReportStatus.ASSIGNED: "assignedAt",
    ReportStatus.CLEANED: "cleanedAt",
    ReportStatus.VERIFIED: "verifiedAt",
}


def can_transition(old: ReportStatus, new: ReportStatus) -> bool:
    """Check a status change against the transition table."""
    return new in ALLOWED_TRANSITIONS[old]


def check_transition(old: ReportStatus, new: ReportStatus) -> None:
    """
    Raise if a status change is not allowed.

    Raises:
        IllegalTransitionError: For any change outside the table
    """
    if not can_transition(old, new):
        raise IllegalTransitionError(
            f"Illegal report transition {old.value} -> {new.value}",
            details={"from": old.value, "to": new.value},
        )


def priority_for_severity(severity: Optional[str]) -> int:
    """red -> 1, yellow -> 2, anything else -> 3."""
    return SEVERITY_PRIORITY.get((severity or "").lower(), DEFAULT_PRIORITY)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Read a stored timestamp.

    Accepts datetimes, ISO strings, epoch seconds or milliseconds and
    ``{"seconds": ...}`` mappings. Naive values are taken as UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, dict) and "seconds" in value:
        parsed = datetime.fromtimestamp(float(value["seconds"]), tz=timezone.utc)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class HistoryEntry:
    """One entry of a report's append-only history."""
    status: ReportStatus
    time: datetime
    note: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {
            "status": self.status.value,
            "time": to_iso(self.time),
        }
        if self.note:
            entry["note"] = self.note
        if self.details:
            entry["details"] = self.details
        return entry


@dataclass
class Report:
    """
    Citizen-submitted waste sighting.

    Wraps the stored document; ``data`` keeps every stored field so nothing
    the front ends wrote is lost when the report is read back.
    """
    id: str
    citizen_id: Optional[str]
    image_before: Optional[str]
    status: ReportStatus = ReportStatus.PENDING

    image_after: Optional[str] = None
    location: Dict[str, Any] = field(default_factory=dict)

    classification: Optional[str] = None
    level: Optional[str] = None
    priority: Optional[int] = None

    assigned_sweeper: Optional[str] = None
    created_at: Optional[datetime] = None

    history: List[Dict[str, Any]] = field(default_factory=list)
    processed_events: List[str] = field(default_factory=list)
    rewards: Dict[str, str] = field(default_factory=dict)
    ai_attempts: int = 0

    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Report":
        """Build a report from a stored document (must include ``id``)."""
        try:
            status = ReportStatus(doc.get("status") or ReportStatus.PENDING.value)
        except ValueError:
            logger.warning(f"Report {doc.get('id')} has unknown status {doc.get('status')!r}")
            status = ReportStatus.PENDING

        priority = doc.get("priority")
        return cls(
            id=doc["id"],
            citizen_id=doc.get("citizenId"),
            image_before=doc.get("imageBefore"),
            status=status,
            image_after=doc.get("imageAfter"),
            location=dict(doc.get("location") or {}),
            classification=doc.get("classification"),
            level=doc.get("level"),
            priority=int(priority) if isinstance(priority, (int, float)) else None,
            assigned_sweeper=doc.get("assignedSweeper"),
            created_at=parse_timestamp(doc.get("createdAt")),
            history=list(doc.get("history") or []),
            processed_events=list(doc.get("processedEvents") or []),
            rewards=dict(doc.get("rewards") or {}),
            ai_attempts=int(doc.get("aiAttempts") or 0),
            data=dict(doc),
        )

    @property
    def point(self) -> Point:
        return Point.from_location(self.location)

    @property
    def effective_priority(self) -> int:
        """Stored priority, or the lowest urgency when unset."""
        return self.priority if self.priority is not None else DEFAULT_PRIORITY

    @property
    def last_changed_at(self) -> Optional[datetime]:
        """Time of the last recorded transition, else ``createdAt``."""
        if self.history:
            changed = parse_timestamp(self.history[-1].get("time"))
            if changed is not None:
                return changed
        return self.created_at

    @property
    def pending_rewards(self) -> List[str]:
        """Milestones claimed but never settled as awarded or failed."""
        return [milestone for milestone, state in self.rewards.items() if state == REWARD_PENDING]

    def has_processed(self, event_key: Optional[str]) -> bool:
        return bool(event_key) and event_key in self.processed_events

    def to_dict(self) -> Dict[str, Any]:
        """Summary used in logs and group listings."""
        return {
            "id": self.id,
            "citizenId": self.citizen_id,
            "status": self.status.value,
            "location": self.location,
            "classification": self.classification,
            "level": self.level,
            "priority": self.priority,
            "assignedSweeper": self.assigned_sweeper,
            "createdAt": to_iso(self.created_at) if self.created_at else None,
        }


class ReportHandler:
    """
    Reads and writes reports in the document store.

    Every status change goes through ``transition``, which checks the state
    machine and writes the new status, its fields and exactly one history
    entry in a single guarded update.
    """

    def __init__(self, store: DocumentStore, collection: str = "reports"):
        """
        Initialize report handler.

        Args:
            store: Document store holding reports
            collection: Collection name
        """
        self.store = store
        self.collection = collection

    def create_report(
        self,
        citizen_id: str,
        image_before: str,
        latitude: float,
        longitude: float,
        address: Optional[str] = None,
        report_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        **extra: Any
    ) -> Report:
        """
        Store a new pending report, as the citizen front end does.

        Args:
            citizen_id: Owning account
            image_before: Reference to the uploaded before photo
            latitude: Capture latitude
            longitude: Capture longitude
            address: Best-effort reverse geocoded address
            report_id: Optional explicit id
            created_at: Submission time (defaults to now)
            **extra: Additional document fields

        Returns:
            Created Report
        """
        created = created_at or utc_now()
        location: Dict[str, Any] = {"lat": latitude, "lng": longitude}
        if address:
            location["address"] = address

        data = {
            "citizenId": citizen_id,
            "imageBefore": image_before,
            "location": location,
            "status": ReportStatus.PENDING.value,
            "createdAt": to_iso(created),
            "history": [HistoryEntry(ReportStatus.PENDING, created, note="Report submitted").to_dict()],
        }
        data.update(extra)

        doc_id = self.store.create(self.collection, data, doc_id=report_id)
        logger.info(f"New report created: {doc_id} at ({latitude}, {longitude})")
        return self.get_report(doc_id)

    def get_report(self, report_id: str) -> Optional[Report]:
        """Get report by ID."""
        doc = self.store.get(self.collection, report_id)
        return Report.from_document(doc) if doc else None

    def find_by_image(self, field_name: str, references: Iterable[str]) -> Optional[Report]:
        """
        Exact-match lookup on ``imageBefore``/``imageAfter``.

        Args:
            field_name: Document field to compare
            references: Candidate URIs, tried in order

        Returns:
            First matching report or None
        """
        for reference in references:
            if not reference:
                continue
            docs = self.store.find(self.collection, {field_name: reference}, limit=1)
            if docs:
                return Report.from_document(docs[0])
        return None

    def get_recent_reports(
        self,
        statuses: Sequence[ReportStatus],
        limit: Optional[int] = None
    ) -> List[Report]:
        """Reports in the given statuses, newest first."""
        docs = self.store.find(
            self.collection,
            {"status": [s.value for s in statuses]},
            order_by="createdAt",
            descending=True,
            limit=limit,
        )
        reports = [Report.from_document(doc) for doc in docs]
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        reports.sort(key=lambda r: r.created_at or oldest, reverse=True)
        return reports

    def get_open_reports(self) -> List[Report]:
        """Pending and assigned reports, oldest first (submission order)."""
        return list(reversed(self.get_recent_reports(OPEN_STATUSES)))

    def transition(
        self,
        report: Report,
        new_status: ReportStatus,
        fields: Optional[Dict[str, Any]] = None,
        note: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        event_key: Optional[str] = None,
        expected_statuses: Optional[Sequence[ReportStatus]] = None,
        reward_milestones: Sequence[str] = (),
        extra_check: Optional[Callable[[Dict[str, Any]], bool]] = None
    ) -> bool:
        """
        Move a report to a new status if it is still where we left it.

        The write only happens when the stored status is one of
        ``expected_statuses`` (default: the status ``report`` was read with),
        the event has not been applied before and no reward milestone named
        here has been claimed yet.

        Args:
            report: Report as read by the caller
            new_status: Target status
            fields: Extra fields to merge
            note: History note
            details: History details
            event_key: Finalize event identity, recorded for deduplication
            expected_statuses: Statuses the stored report may be in
            reward_milestones: Milestones to claim as ``pending`` with the write
            extra_check: Additional precondition on the stored document

        Returns:
            True if this call applied the transition

        Raises:
            IllegalTransitionError: If the state machine forbids the change
        """
        check_transition(report.status, new_status)

        now = utc_now()
        allowed = {s.value for s in (expected_statuses or (report.status,))}

        update: Dict[str, Any] = dict(fields or {})
        update["status"] = new_status.value
        update["updatedAt"] = to_iso(now)

        timestamp_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
        if timestamp_field and not report.data.get(timestamp_field):
            update[timestamp_field] = to_iso(now)

        for milestone in reward_milestones:
            update[f"rewards.{milestone}"] = REWARD_PENDING

        def precondition(current: Dict[str, Any]) -> bool:
            if current.get("status") not in allowed:
                return False
            if event_key and event_key in (current.get("processedEvents") or []):
                return False
            claimed = current.get("rewards") or {}
            if any(milestone in claimed for milestone in reward_milestones):
                return False
            if timestamp_field and current.get(timestamp_field):
                update.pop(timestamp_field, None)
            return extra_check(current) if extra_check else True

        applied = self.store.update(
            self.collection,
            report.id,
            fields=update,
            append_to_history=HistoryEntry(new_status, now, note=note, details=details).to_dict(),
            array_union={"processedEvents": [event_key]} if event_key else None,
            when=precondition,
        )

        if applied:
            logger.info(f"Report {report.id} status: {report.status.value} -> {new_status.value}")
        else:
            logger.info(
                f"Report {report.id} transition to {new_status.value} skipped "
                f"(already applied or report moved on)"
            )
        return applied

    def record_error(
        self,
        report: Report,
        fields: Dict[str, Any],
        expected_statuses: Sequence[ReportStatus],
        new_status: Optional[ReportStatus] = None,
        note: Optional[str] = None
    ) -> bool:
        """
        Persist diagnostic fields, optionally moving to an error-handling status.

        Never touches a report that has left ``expected_statuses``.
        """
        if new_status is not None and can_transition(report.status, new_status):
            return self.transition(
                report,
                new_status,
                fields=fields,
                note=note,
                expected_statuses=expected_statuses,
            )

        allowed = {s.value for s in expected_statuses}
        return self.store.update(
            self.collection,
            report.id,
            fields=fields,
            when=lambda current: current.get("status") in allowed,
        )

    def set_reward_state(self, report_id: str, milestone: str, state: str) -> None:
        """Record the outcome of a reward award on the report."""
        self.store.update(
            self.collection,
            report_id,
            fields={f"rewards.{milestone}": state},
        )

    def find_stuck_reports(
        self,
        older_than: timedelta,
        statuses: Sequence[ReportStatus] = (
            ReportStatus.PENDING,
            ReportStatus.CLEANED,
            ReportStatus.AI_ERROR,
        ),
        now: Optional[datetime] = None
    ) -> List[Report]:
        """
        Reports that have not left a waiting status for too long.

        Age is measured from the last history entry, falling back to
        ``createdAt``.
        """
        cutoff = (now or utc_now()) - older_than
        return [
            report for report in self.get_recent_reports(statuses)
            if report.last_changed_at is not None and report.last_changed_at < cutoff
        ]

    def find_unsettled_rewards(
        self,
        older_than: timedelta,
        now: Optional[datetime] = None
    ) -> List[Report]:
        """
        Reports holding a ``rewards.<milestone>`` pending marker older than
        ``older_than``.

        A marker that stays pending means the award step never recorded its
        outcome; the guarded transition refuses to claim it again, so these
        need manual reconciliation.
        """
        cutoff = (now or utc_now()) - older_than
        statuses = (ReportStatus.ASSIGNED, ReportStatus.CLEANED, ReportStatus.VERIFIED)
        return [
            report for report in self.get_recent_reports(statuses)
            if report.pending_rewards
            and report.last_changed_at is not None
            and report.last_changed_at < cutoff
        ]

    def get_statistics(self) -> Dict[str, Any]:
        """Get report counts by status."""
        by_status: Dict[str, int] = {}
        for doc in self.store.find(self.collection):
            status = doc.get("status") or ReportStatus.PENDING.value
            by_status[status] = by_status.get(status, 0) + 1

        return {
            "total_reports": sum(by_status.values()),
            "by_status": by_status,
        }
