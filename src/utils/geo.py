import math
from typing import Tuple

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LATITUDE = 111.32


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance between two points in kilometres."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lng / 2) ** 2
    )
    # rounding can push a a hair above 1 for antipodal points
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def offset_coordinate(
    latitude: float, longitude: float, distance_km: float, bearing_degrees: float
) -> Tuple[float, float]:
    """Approximate point `distance_km` away from the origin along a bearing.

    Uses an equirectangular approximation, which is accurate to well under a
    percent for the few-kilometre offsets used for placeholder pins.
    """
    bearing = math.radians(bearing_degrees)
    d_lat = (distance_km * math.cos(bearing)) / KM_PER_DEGREE_LATITUDE
    cos_lat = max(math.cos(math.radians(latitude)), 0.01)
    d_lng = (distance_km * math.sin(bearing)) / (KM_PER_DEGREE_LATITUDE * cos_lat)
    new_lat = max(-90.0, min(90.0, latitude + d_lat))
    new_lng = ((longitude + d_lng + 180.0) % 360.0) - 180.0
    return new_lat, new_lng


def format_distance(distance_km: float | None) -> str:
    if distance_km is None:
        return ""
    if distance_km < 1:
        return f"{distance_km * 1000:.0f}m away"
    return f"{distance_km:.1f}km away"
