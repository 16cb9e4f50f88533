"""Location sources, debouncing and coordinate helpers."""

from .debounce import Debouncer
from .geo import Coordinate
from .source import LocationSource, PermissionState, QueueLocationSource

__all__ = [
    "Coordinate",
    "Debouncer",
    "LocationSource",
    "PermissionState",
    "QueueLocationSource",
]
