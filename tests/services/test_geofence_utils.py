from datetime import datetime

import pytest

from fleetdesk.db_models import Geofence
from fleetdesk.services.geofence_utils import (
    bounding_box,
    haversine_distance,
    is_geofence_active,
    is_point_in_circle,
    is_point_in_geofence,
    is_point_in_polygon,
    validate_circle,
    validate_polygon,
)

DEPOT = [
    {"lat": 51.50, "lng": -0.13},
    {"lat": 51.50, "lng": -0.11},
    {"lat": 51.52, "lng": -0.11},
    {"lat": 51.52, "lng": -0.13},
]


def test_haversine_distance():
    # London to Paris is roughly 344 km
    assert haversine_distance(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(343_560, rel=0.01)
    assert haversine_distance(10, 10, 10, 10) == 0


def test_point_in_circle():
    assert is_point_in_circle(51.5074, -0.1278, 51.5074, -0.1278, 100)
    assert not is_point_in_circle(51.5174, -0.1278, 51.5074, -0.1278, 500)
    assert not is_point_in_circle(51.5, -0.1, None, -0.1, 100)


def test_point_in_polygon():
    assert is_point_in_polygon(51.51, -0.12, DEPOT)
    assert not is_point_in_polygon(51.53, -0.12, DEPOT)
    assert not is_point_in_polygon(51.51, -0.12, DEPOT[:2])


def test_point_in_geofence_dispatches_on_type():
    circle = Geofence(geofence_type="circle", center_latitude=51.5, center_longitude=-0.12, radius_meters=200)
    polygon = Geofence(geofence_type="polygon", polygon_coordinates=DEPOT)
    assert is_point_in_geofence(51.5005, -0.12, circle)
    assert is_point_in_geofence(51.51, -0.12, polygon)


def test_schedule_window_crossing_midnight():
    fence = Geofence(is_active=True, active_start_time="22:00", active_end_time="06:00")
    assert is_geofence_active(fence, datetime(2026, 3, 2, 23, 30))
    assert is_geofence_active(fence, datetime(2026, 3, 2, 5, 0))
    assert not is_geofence_active(fence, datetime(2026, 3, 2, 12, 0))


def test_schedule_days_use_sunday_zero():
    # 2026-03-01 is a Sunday
    fence = Geofence(is_active=True, active_days=[1, 2, 3, 4, 5])
    assert not is_geofence_active(fence, datetime(2026, 3, 1, 10, 0))
    assert is_geofence_active(fence, datetime(2026, 3, 2, 10, 0))


def test_inactive_geofence_is_never_active():
    assert not is_geofence_active(Geofence(is_active=False), datetime(2026, 3, 2, 10, 0))


def test_shape_validation():
    assert validate_circle(51.5, -0.12, 500)
    assert not validate_circle(91, 0, 500)
    assert not validate_circle(51.5, -0.12, 0)
    assert not validate_circle(51.5, -0.12, 150_000)
    assert validate_polygon(DEPOT)
    assert not validate_polygon(DEPOT[:2])
    assert not validate_polygon(DEPOT[:2] + [{"lat": True, "lng": 0}])
    assert not validate_polygon(DEPOT[:2] + [{"lat": 95, "lng": 0}])


def test_bounding_box():
    polygon = Geofence(geofence_type="polygon", polygon_coordinates=DEPOT)
    assert bounding_box(polygon) == {"min_lat": 51.50, "max_lat": 51.52, "min_lng": -0.13, "max_lng": -0.11}

    circle = Geofence(geofence_type="circle", center_latitude=0.0, center_longitude=0.0, radius_meters=1110)
    box = bounding_box(circle)
    assert box["max_lat"] == pytest.approx(0.01)
    assert box["min_lng"] == pytest.approx(-0.01)
