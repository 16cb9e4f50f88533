"""Coordinate helpers: validation, distances and parsing."""

from __future__ import annotations

import math
import re
from typing import NamedTuple

from trailsync.constants import (
    EARTH_RADIUS_METERS,
    MAX_LATITUDE,
    MAX_LONGITUDE,
    MIN_LATITUDE,
    MIN_LONGITUDE,
)

COORDINATE_PATTERN = re.compile(r"^-?\d{1,3}(\.\d+)?,\s*-?\d{1,3}(\.\d+)?$")
GROUP_NAME_PATTERN = re.compile(r"^(?:[^\W_]|[\s\-]){2,30}$")


class Coordinate(NamedTuple):
    """A WGS84 latitude/longitude pair in degrees."""

    latitude: float
    longitude: float


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """Return True if both values fall inside the WGS84 ranges."""
    return (
        MIN_LATITUDE <= latitude <= MAX_LATITUDE
        and MIN_LONGITUDE <= longitude <= MAX_LONGITUDE
    )


def distance_between(a: Coordinate, b: Coordinate) -> float:
    """Great-circle distance in meters (haversine)."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_METERS * math.asin(min(1.0, math.sqrt(h)))


def bearing(origin: Coordinate, target: Coordinate) -> float:
    """Initial compass bearing from ``origin`` to ``target`` in [0, 360)."""
    lat1, lat2 = math.radians(origin.latitude), math.radians(target.latitude)
    d_lon = math.radians(target.longitude - origin.longitude)
    y = math.sin(d_lon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(
        d_lon
    )
    return math.degrees(math.atan2(y, x)) % 360


def is_within_radius(point: Coordinate, center: Coordinate, radius_m: float) -> bool:
    """Return True if ``point`` lies within ``radius_m`` meters of ``center``."""
    return distance_between(point, center) <= radius_m


def format_distance(meters: float) -> str:
    """Format a distance for display: ``850m`` or ``2.5km``."""
    if meters < 1000:
        return f"{int(meters)}m"
    return f"{meters / 1000:.1f}km"


def parse_coordinate_string(value: str) -> Coordinate | None:
    """Parse ``"41.0082, 28.9784"`` into a Coordinate.

    Returns None when the text is not two comma-separated decimals or the
    values are out of range.
    """
    if not COORDINATE_PATTERN.fullmatch(value):
        return None
    lat_text, lon_text = value.replace(" ", "").split(",")
    latitude, longitude = float(lat_text), float(lon_text)
    if not is_valid_coordinate(latitude, longitude):
        return None
    return Coordinate(latitude, longitude)


def validate_group_name(name: str) -> bool:
    """Check a display name: 2-30 letters, digits, spaces or hyphens."""
    return bool(GROUP_NAME_PATTERN.fullmatch(name))
