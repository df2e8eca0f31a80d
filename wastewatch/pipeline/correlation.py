"""
Matching uploaded photos to the reports they belong to
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from wastewatch.core.constants import (
    CORRELATION_SCAN_LIMIT,
    CORRELATION_WINDOW_SECONDS,
    LATEST_FALLBACK_LIMIT,
    REPORT_ID_METADATA_KEY,
)
from wastewatch.core.errors import CorrelationMiss
from wastewatch.crowdsource.report_handler import (
    CLEANUP_STATUSES,
    INTAKE_STATUSES,
    Report,
    ReportHandler,
)
from wastewatch.pipeline.events import FinalizeEvent, UploadKind

logger = logging.getLogger(__name__)

IMAGE_FIELDS = {
    UploadKind.BEFORE: "imageBefore",
    UploadKind.AFTER: "imageAfter",
}

ELIGIBLE_STATUSES = {
    UploadKind.BEFORE: INTAKE_STATUSES,
    UploadKind.AFTER: CLEANUP_STATUSES,
}


@dataclass
class Correlation:
    """A located report and how it was found."""
    report: Report
    strategy: str


class ReportCorrelator:
    """
    Locates the report for a finalized upload.

    Strategies, strongest first:
    1. ``reportId`` in the object's custom metadata
    2. exact match of a stored image URI against the object's URI forms
    3. scan of recent eligible reports matching file name, path or report
       id, then the closest upload timestamp embedded in the file name
    4. most recently created eligible report (optional)
    """

    def __init__(
        self,
        handler: ReportHandler,
        legacy_fallback: bool = True,
        scan_limit: int = CORRELATION_SCAN_LIMIT,
        latest_limit: int = LATEST_FALLBACK_LIMIT,
        window_seconds: int = CORRELATION_WINDOW_SECONDS
    ):
        self.handler = handler
        self.legacy_fallback = legacy_fallback
        self.scan_limit = scan_limit
        self.latest_limit = latest_limit
        self.window_seconds = window_seconds

    def locate(self, event: FinalizeEvent, kind: UploadKind) -> Correlation:
        """
        Find the report an upload belongs to.

        Raises:
            CorrelationMiss: If no strategy matched
        """
        report = self._by_metadata(event)
        if report is not None:
            return Correlation(report, "metadata")

        report = self.handler.find_by_image(IMAGE_FIELDS[kind], event.references())
        if report is not None:
            return Correlation(report, "exact")

        report = self._by_scan(event, kind)
        if report is not None:
            logger.info(f"Found report {report.id} by scanning recent reports")
            return Correlation(report, "scan")

        if self.legacy_fallback:
            candidates = self.handler.get_recent_reports(ELIGIBLE_STATUSES[kind], limit=self.latest_limit)
            if candidates:
                logger.warning(
                    f"No report matched {event.path}; using most recent "
                    f"{candidates[0].status.value} report {candidates[0].id} as fallback"
                )
                return Correlation(candidates[0], "latest")

        raise CorrelationMiss(
            f"No report found for {kind.value} image {event.path}",
            details={"bucket": event.bucket, "path": event.path},
        )

    def _by_metadata(self, event: FinalizeEvent) -> Optional[Report]:
        report_id = event.metadata.get(REPORT_ID_METADATA_KEY)
        if not report_id:
            return None
        report = self.handler.get_report(report_id)
        if report is None:
            logger.warning(f"Upload {event.path} names unknown report {report_id}")
        return report

    def _by_scan(self, event: FinalizeEvent, kind: UploadKind) -> Optional[Report]:
        field_name = IMAGE_FIELDS[kind]
        needles = {event.filename, event.path, quote(event.path, safe="")}
        segments = set(event.directory_segments)
        candidates = self.handler.get_recent_reports(ELIGIBLE_STATUSES[kind], limit=self.scan_limit)

        # Name and id matches outrank any timestamp match
        for report in candidates:
            stored = report.data.get(field_name) or ""
            if stored and any(needle in stored for needle in needles):
                return report
            if report.id in segments:
                return report

        uploaded_at = event.embedded_timestamp if kind == UploadKind.BEFORE else None
        if uploaded_at is None:
            return None

        best, best_skew = None, float(self.window_seconds)
        for report in candidates:
            if report.created_at is None:
                continue
            skew = abs((report.created_at - uploaded_at).total_seconds())
            if skew < best_skew:
                best, best_skew = report, skew
        return best
