"""
WasteWatch AI - Report Grouping
Groups nearby open reports so one sweeper visit can clear them together.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from wastewatch.core.constants import (
    DEFAULT_PRIORITY,
    GROUPING_DISTANCE_KM,
    MIN_GROUP_SIZE,
)
from wastewatch.core.geo_utils import (
    Point,
    calculate_centroid,
    distance_between,
)
from wastewatch.crowdsource.report_handler import Report, ReportHandler


@dataclass
class ReportGroup:
    """Reports close enough to be cleaned in one visit."""
    reports: List[Report]
    center_latitude: float
    center_longitude: float
    highest_priority: int

    @property
    def total_reports(self) -> int:
        return len(self.reports)

    @property
    def center(self) -> Point:
        return Point(self.center_latitude, self.center_longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reports": [r.to_dict() for r in self.reports],
            "centerLocation": self.center.to_dict(),
            "totalReports": self.total_reports,
            "highestPriority": self.highest_priority,
        }


def group_reports_by_location(
    reports: List[Report],
    distance_threshold_km: float = GROUPING_DISTANCE_KM
) -> List[ReportGroup]:
    """
    Greedy single-pass grouping in input order.

    Each report not yet grouped becomes a seed; every later ungrouped report
    within ``distance_threshold_km`` of the seed joins its group. Membership
    is tested against the seed only, so two members may be farther apart than
    the threshold. Groups smaller than two are dropped.

    Args:
        reports: Reports in the order they should be considered
        distance_threshold_km: Maximum seed distance

    Returns:
        List of ReportGroup objects, in seed order
    """
    if not reports:
        return []

    assigned = [False] * len(reports)
    points = [r.point for r in reports]
    groups = []

    for i, seed in enumerate(reports):
        if assigned[i]:
            continue

        assigned[i] = True
        members = [seed]

        for j in range(i + 1, len(reports)):
            if assigned[j]:
                continue
            if distance_between(points[i], points[j]) <= distance_threshold_km:
                assigned[j] = True
                members.append(reports[j])

        if len(members) >= MIN_GROUP_SIZE:
            groups.append(_create_group(members))

    return groups


def _create_group(reports: List[Report]) -> ReportGroup:
    """Create a ReportGroup from its members."""
    center = calculate_centroid([r.point.to_tuple() for r in reports])
    highest = min(r.effective_priority for r in reports)

    return ReportGroup(
        reports=reports,
        center_latitude=center[0],
        center_longitude=center[1],
        highest_priority=highest,
    )


def group_open_reports(
    handler: ReportHandler,
    distance_threshold_km: float = GROUPING_DISTANCE_KM
) -> List[ReportGroup]:
    """Group the pending and assigned reports, in submission order."""
    return group_reports_by_location(handler.get_open_reports(), distance_threshold_km)


def order_for_dispatch(
    reports: List[Report],
    origin: Optional[Point] = None
) -> List[Report]:
    """
    Sort reports by priority, most urgent first.

    Ties are broken by distance from ``origin`` when given.
    """
    def sort_key(report: Report):
        distance = distance_between(origin, report.point) if origin else 0.0
        return (report.effective_priority, distance)

    return sorted(reports, key=sort_key)


def get_group_statistics(groups: List[ReportGroup]) -> Dict[str, Any]:
    """
    Get aggregate statistics for a list of report groups.

    Args:
        groups: List of ReportGroup objects

    Returns:
        Dictionary with aggregate statistics
    """
    if not groups:
        return {
            "total_groups": 0,
            "total_reports": 0,
        }

    total_reports = sum(g.total_reports for g in groups)

    priority_counts = {1: 0, 2: 0, DEFAULT_PRIORITY: 0}
    for g in groups:
        priority_counts[g.highest_priority] = priority_counts.get(g.highest_priority, 0) + 1

    return {
        "total_groups": len(groups),
        "total_reports": total_reports,
        "average_group_size": round(total_reports / len(groups), 1),
        "largest_group_reports": max(g.total_reports for g in groups),
        "priority_distribution": priority_counts,
    }
