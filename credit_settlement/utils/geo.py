"""Great-circle distance and bounding helpers for the exclusivity radius"""

import math
from typing import List, Tuple

EARTH_RADIUS_KM = 6371.0088
KM_PER_DEGREE_LAT = EARTH_RADIUS_KM * math.pi / 180.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance between two WGS84 points in kilometres"""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def bounding_box(lat: float, lon: float, radius_km: float) -> Tuple[float, float, float, float]:
    """
    (min_lat, max_lat, min_lon, max_lon) enclosing the disc of `radius_km`.

    Longitude spans the full range near the poles or when the box would cross
    the antimeridian; the haversine pass afterwards does the exact filtering.
    """
    d_lat = radius_km / KM_PER_DEGREE_LAT
    min_lat = max(-90.0, lat - d_lat)
    max_lat = min(90.0, lat + d_lat)

    angular = radius_km / EARTH_RADIUS_KM
    cos_lat = math.cos(math.radians(lat))
    if min_lat <= -90.0 or max_lat >= 90.0 or math.sin(angular) >= cos_lat:
        return min_lat, max_lat, -180.0, 180.0

    d_lon = math.degrees(math.asin(math.sin(angular) / cos_lat))
    min_lon, max_lon = lon - d_lon, lon + d_lon
    if min_lon < -180.0 or max_lon > 180.0:
        return min_lat, max_lat, -180.0, 180.0
    return min_lat, max_lat, min_lon, max_lon


def band_height_degrees(radius_km: float) -> float:
    return radius_km / KM_PER_DEGREE_LAT


def latitude_bands(lat: float, radius_km: float) -> List[int]:
    """
    Latitude bands (each `radius_km` tall) touched by the disc around `lat`.

    Any two points closer than `radius_km` share at least one band: the disc
    of one always covers the band containing the other.
    """
    height = band_height_degrees(radius_km)
    min_lat = max(-90.0, lat - height)
    max_lat = min(90.0, lat + height)
    first = math.floor((min_lat + 90.0) / height)
    last = math.floor((max_lat + 90.0) / height)
    return list(range(first, last + 1))
