"""
Geographic utility functions.

Great-circle distances and the bounding boxes used to prefilter nearby
drivers in SQL before exact distances are computed.
"""

from math import radians, cos, sin, asin, sqrt
from typing import Tuple

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(a))
    return c * EARTH_RADIUS_KM


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    (min_lat, max_lat, min_lon, max_lon) enclosing a circle of ``radius_km``.

    Slightly larger than the circle; callers filter by exact distance after.
    """
    lat = float(lat)
    lon = float(lon)
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    lon_scale = max(cos(radians(lat)), 0.01)
    lon_delta = radius_km / (KM_PER_DEGREE_LAT * lon_scale)
    return lat - lat_delta, lat + lat_delta, lon - lon_delta, lon + lon_delta


def is_valid_coordinate(lat, lon) -> bool:
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        return False
    return -90 <= lat <= 90 and -180 <= lon <= 180
