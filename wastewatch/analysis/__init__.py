"""
WasteWatch AI - Analysis Module
Spatial grouping of reports for dispatch.
"""

from wastewatch.analysis.report_grouping import (
    ReportGroup,
    group_reports_by_location,
    group_open_reports,
    order_for_dispatch,
    get_group_statistics,
)

__all__ = [
    "ReportGroup",
    "group_reports_by_location",
    "group_open_reports",
    "order_for_dispatch",
    "get_group_statistics",
]
