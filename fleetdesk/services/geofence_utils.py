# fleetdesk/services/geofence_utils.py
from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

EARTH_RADIUS_METERS = 6371000
MAX_RADIUS_METERS = 100000
GEOFENCE_TYPES = ("circle", "polygon")


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in metres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_METERS * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_point_in_circle(lat: float, lng: float, center_lat, center_lng, radius) -> bool:
    if center_lat is None or center_lng is None or not radius:
        return False
    return haversine_distance(lat, lng, center_lat, center_lng) <= radius


def is_point_in_polygon(lat: float, lng: float, coordinates) -> bool:
    """Ray casting over raw lat/lng; fine at geofence scale."""
    if not coordinates or len(coordinates) < 3:
        return False
    inside = False
    j = len(coordinates) - 1
    for i in range(len(coordinates)):
        yi, xi = coordinates[i]["lat"], coordinates[i]["lng"]
        yj, xj = coordinates[j]["lat"], coordinates[j]["lng"]
        if (yi > lat) != (yj > lat):
            x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lng < x_cross:
                inside = not inside
        j = i
    return inside


def is_point_in_geofence(lat: float, lng: float, geofence) -> bool:
    if geofence.geofence_type == "circle":
        return is_point_in_circle(
            lat, lng, geofence.center_latitude, geofence.center_longitude, geofence.radius_meters
        )
    return is_point_in_polygon(lat, lng, geofence.polygon_coordinates)


def sunday_based_weekday(moment: datetime) -> int:
    return (moment.weekday() + 1) % 7


def in_time_window(current: str, start: str, end: str) -> bool:
    """HH:MM window, inclusive at both ends. start > end crosses midnight."""
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def is_geofence_active(geofence, moment: Optional[datetime] = None) -> bool:
    """
    Whether the geofence's schedule covers ``moment``.

    ``active_days`` uses 0 = Sunday. Windows where start > end cross midnight
    (22:00-06:00 covers 23:30 and 05:00). No days and no window means always on.
    """
    if not geofence.is_active:
        return False
    moment = moment or datetime.now()

    if geofence.active_days:
        if sunday_based_weekday(moment) not in geofence.active_days:
            return False

    start, end = geofence.active_start_time, geofence.active_end_time
    if start and end:
        if not in_time_window(moment.strftime("%H:%M"), start, end):
            return False
    return True


def validate_circle(center_lat, center_lng, radius) -> bool:
    if center_lat is None or center_lng is None or radius is None:
        return False
    return (
        -90 <= center_lat <= 90
        and -180 <= center_lng <= 180
        and 0 < radius <= MAX_RADIUS_METERS
    )


def validate_polygon(coordinates) -> bool:
    if not coordinates or len(coordinates) < 3:
        return False
    for point in coordinates:
        lat, lng = point.get("lat"), point.get("lng")
        if isinstance(lat, bool) or isinstance(lng, bool):
            return False
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            return False
        if not (-90 <= lat <= 90 and -180 <= lng <= 180):
            return False
    return True


def bounding_box(geofence) -> Optional[dict]:
    if geofence.geofence_type == "circle":
        if geofence.center_latitude is None or geofence.center_longitude is None or not geofence.radius_meters:
            return None
        lat_offset = geofence.radius_meters / 111000
        lng_offset = geofence.radius_meters / (111000 * math.cos(math.radians(geofence.center_latitude)))
        return {
            "min_lat": geofence.center_latitude - lat_offset,
            "max_lat": geofence.center_latitude + lat_offset,
            "min_lng": geofence.center_longitude - lng_offset,
            "max_lng": geofence.center_longitude + lng_offset,
        }
    coords = geofence.polygon_coordinates or []
    if not coords:
        return None
    lats = [c["lat"] for c in coords]
    lngs = [c["lng"] for c in coords]
    return {"min_lat": min(lats), "max_lat": max(lats), "min_lng": min(lngs), "max_lng": max(lngs)}
