from __future__ import annotations

from dataclasses import dataclass
from math import asin, cos, radians, sin, sqrt

EARTH_RADIUS_M = 6371000.0

MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(sqrt(min(1.0, a)))
    return EARTH_RADIUS_M * c


def is_valid_latitude(value: float) -> bool:
    return MIN_LATITUDE <= value <= MAX_LATITUDE


def is_valid_longitude(value: float) -> bool:
    return MIN_LONGITUDE <= value <= MAX_LONGITUDE


@dataclass(frozen=True, slots=True)
class GeofenceCheck:
    within: bool
    distance_m: float
    radius_m: float


def evaluate_geofence(
    *,
    site_lat: float,
    site_lon: float,
    lat: float,
    lon: float,
    radius_m: float,
) -> GeofenceCheck:
    distance_value = distance_m(site_lat, site_lon, lat, lon)
    return GeofenceCheck(
        within=distance_value <= radius_m,
        distance_m=round(distance_value, 2),
        radius_m=radius_m,
    )
