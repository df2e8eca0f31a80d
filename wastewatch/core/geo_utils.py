"""
WasteWatch AI - Geospatial Utilities
Distance and location checks shared by grouping, dispatch and intake.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from wastewatch.core.constants import (
    MAX_GPS_ACCURACY_METERS,
    MAX_GPS_TIME_SKEW_SECONDS,
)

# Earth's radius in kilometers
EARTH_RADIUS_KM = 6371.0


@dataclass
class Point:
    """Geographic point with latitude and longitude."""
    latitude: float
    longitude: float

    def to_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, float]:
        """Return as the {lat, lng} mapping stored on reports."""
        return {"lat": self.latitude, "lng": self.longitude}

    @classmethod
    def from_location(cls, location: Optional[Dict[str, Any]]) -> "Point":
        """
        Build a point from a stored report location.

        Missing or null coordinates fall back to 0.0.
        """
        location = location or {}
        return cls(
            latitude=float(location.get("lat") or 0.0),
            longitude=float(location.get("lng") or 0.0),
        )


def haversine_distance(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates in decimal degrees
        lat2, lon2: Second point coordinates in decimal degrees

    Returns:
        Distance in kilometers
    """
    # Convert to radians
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    # Haversine formula
    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_between(a: Point, b: Point) -> float:
    """Haversine distance in kilometers between two points."""
    return haversine_distance(a.latitude, a.longitude, b.latitude, b.longitude)


def calculate_centroid(
    points: List[Tuple[float, float]]
) -> Tuple[float, float]:
    """
    Calculate the centroid (arithmetic mean) of a set of points.

    Args:
        points: List of (latitude, longitude) tuples

    Returns:
        Tuple of (latitude, longitude) of the centroid
    """
    if not points:
        return (0.0, 0.0)

    lat_sum = sum(p[0] for p in points)
    lon_sum = sum(p[1] for p in points)
    n = len(points)

    return (lat_sum / n, lon_sum / n)


def is_location_suspicious(
    upload_time: datetime,
    gps_time: Optional[datetime],
    accuracy_m: Optional[float]
) -> bool:
    """
    Flag a captured location that is unlikely to be the photo's location.

    A fix taken more than two minutes away from the upload, or one with an
    accuracy radius wider than 100 meters, is suspicious. Missing values are
    not evidence either way.

    Args:
        upload_time: When the photo was submitted
        gps_time: When the GPS fix was taken
        accuracy_m: Reported accuracy radius in meters

    Returns:
        True if the location should be treated with suspicion
    """
    if gps_time is not None:
        skew = abs((upload_time - gps_time).total_seconds())
        if skew > MAX_GPS_TIME_SKEW_SECONDS:
            return True

    if accuracy_m is not None and accuracy_m > MAX_GPS_ACCURACY_METERS:
        return True

    return False

