"""
Tests for geospatial utilities
"""
import pytest
from datetime import datetime, timedelta, timezone

from wastewatch.core.geo_utils import (
    Point,
    calculate_centroid,
    haversine_distance,
    is_location_suspicious,
)


class TestHaversineDistance:
    """Test suite for great-circle distance."""

    def test_same_point_is_zero(self):
        assert haversine_distance(12.9716, 77.5946, 12.9716, 77.5946) == 0.0

    def test_one_degree_latitude(self):
        """One degree of latitude on the equator is about 111.19 km."""
        assert haversine_distance(0, 0, 1, 0) == pytest.approx(111.19, abs=0.5)

    def test_london_paris(self):
        distance = haversine_distance(51.5074, -0.1278, 48.8566, 2.3522)
        assert distance == pytest.approx(343.5, abs=2)

    def test_symmetry(self):
        a = haversine_distance(12.90, 77.60, 19.07, 72.87)
        b = haversine_distance(19.07, 72.87, 12.90, 77.60)
        assert a == pytest.approx(b)

    def test_short_distance_in_meters_range(self):
        """Two reports ~60 m apart are within the grouping radius."""
        distance = haversine_distance(12.90, 77.60, 12.9005, 77.6003)
        assert 0.05 < distance < 0.1


class TestCentroid:
    """Test suite for centroid calculation."""

    def test_empty(self):
        assert calculate_centroid([]) == (0.0, 0.0)

    def test_mean_of_points(self):
        center = calculate_centroid([(10.0, 20.0), (12.0, 22.0)])
        assert center == pytest.approx((11.0, 21.0))


class TestPoint:
    """Test suite for Point."""

    def test_from_location(self):
        point = Point.from_location({"lat": 12.9, "lng": 77.6, "address": "MG Road"})
        assert point.to_tuple() == (12.9, 77.6)

    def test_missing_location_defaults_to_origin(self):
        assert Point.from_location(None).to_tuple() == (0.0, 0.0)
        assert Point.from_location({"lat": None}).to_tuple() == (0.0, 0.0)

    def test_to_dict(self):
        assert Point(1.5, 2.5).to_dict() == {"lat": 1.5, "lng": 2.5}


class TestLocationSuspicion:
    """Test suite for captured-location checks."""

    def setup_method(self):
        self.upload = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)

    def test_fresh_accurate_fix(self):
        gps = self.upload - timedelta(seconds=30)
        assert is_location_suspicious(self.upload, gps, 15.0) is False

    def test_stale_fix(self):
        gps = self.upload - timedelta(minutes=5)
        assert is_location_suspicious(self.upload, gps, 15.0) is True

    def test_inaccurate_fix(self):
        assert is_location_suspicious(self.upload, self.upload, 250.0) is True

    def test_missing_values_are_not_suspicious(self):
        assert is_location_suspicious(self.upload, None, None) is False
