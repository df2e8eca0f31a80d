"""
WasteWatch AI - Core Utilities
Central configuration, constants, errors and geospatial helpers.
"""

from wastewatch.core.config import settings, get_settings
from wastewatch.core.constants import (
    INTAKE_CONFIDENCE_THRESHOLD,
    INTAKE_REWARD_POINTS,
    CLEANUP_REWARD_POINTS,
    GROUPING_DISTANCE_KM,
)
from wastewatch.core.geo_utils import (
    haversine_distance,
    calculate_centroid,
    is_location_suspicious,
)

__all__ = [
    "settings",
    "get_settings",
    "INTAKE_CONFIDENCE_THRESHOLD",
    "INTAKE_REWARD_POINTS",
    "CLEANUP_REWARD_POINTS",
    "GROUPING_DISTANCE_KM",
    "haversine_distance",
    "calculate_centroid",
    "is_location_suspicious",
]
