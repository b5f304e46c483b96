"""
MangroveWatch - Geospatial Utilities
Common geospatial calculations and coordinate checks.
"""

import math
from typing import Optional, Tuple
from dataclasses import dataclass

from mangrovewatch.core.exceptions import ValidationError

# Earth's radius in kilometers (spherical approximation)
EARTH_RADIUS_KM = 6371.0
EARTH_RADIUS_M = EARTH_RADIUS_KM * 1000


@dataclass(frozen=True)
class Point:
    """Geographic point with longitude and latitude."""
    longitude: float
    latitude: float

    def to_geojson(self) -> dict:
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}


def is_valid_coordinates(longitude: float, latitude: float) -> bool:
    """Check longitude/latitude ranges (NaN fails both comparisons)."""
    return -180 <= longitude <= 180 and -90 <= latitude <= 90


def validate_coordinates(longitude: float, latitude: float) -> Point:
    """
    Validate a longitude/latitude pair.

    Raises:
        ValidationError: if either value is out of range
    """
    try:
        lon = float(longitude)
        lat = float(latitude)
    except (TypeError, ValueError):
        raise ValidationError(
            "Coordinates must be numbers",
            details={"longitude": longitude, "latitude": latitude},
        )

    if not is_valid_coordinates(lon, lat):
        raise ValidationError(
            "Invalid coordinates: longitude must be in [-180, 180] and latitude in [-90, 90]",
            details={"longitude": lon, "latitude": lat},
        )
    return Point(longitude=lon, latitude=lat)


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
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    # Clamp rounding noise for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def haversine_distance_m(
    lat1: float, lon1: float,
    lat2: float, lon2: float
) -> float:
    """Great-circle distance in meters."""
    return haversine_distance(lat1, lon1, lat2, lon2) * 1000


def radius_bounds(
    latitude: float,
    radius_m: float
) -> Tuple[float, float, Optional[float]]:
    """
    Latitude range and longitude half-span covering a spherical cap.

    Args:
        latitude: Center latitude in decimal degrees
        radius_m: Cap radius in meters

    Returns:
        (south, north, lon_half_span); lon_half_span is None when the cap
        reaches a pole and therefore spans every longitude
    """
    angular = radius_m / EARTH_RADIUS_M
    if angular >= math.pi:
        return (-90.0, 90.0, None)

    south = latitude - math.degrees(angular)
    north = latitude + math.degrees(angular)
    if south <= -90 or north >= 90:
        return (max(south, -90.0), min(north, 90.0), None)

    ratio = math.sin(angular) / math.cos(math.radians(latitude))
    if ratio >= 1:
        return (south, north, None)
    return (south, north, math.degrees(math.asin(ratio)))
