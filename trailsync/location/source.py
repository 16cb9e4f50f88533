"""Location sources: lazy coordinate streams with permission-gated start/stop."""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Iterator, Optional

from trailsync.constants import DEFAULT_DISTANCE_FILTER_METERS
from trailsync.errors import PermissionDeniedError, ValidationError
from trailsync.location.geo import Coordinate, distance_between, is_valid_coordinate

_STOP = object()


class PermissionState(str, Enum):
    """Authorization state for reading the device location."""

    NOT_DETERMINED = "not_determined"
    GRANTED = "granted"
    DENIED = "denied"


PermissionListener = Callable[[PermissionState], None]


class LocationSource(ABC):
    """Produces device coordinates once location permission is granted."""

    def __init__(
        self, permission_state: PermissionState = PermissionState.NOT_DETERMINED
    ) -> None:
        self._permission_state = permission_state
        self._permission_listeners: list[PermissionListener] = []
        self._listeners_lock = threading.Lock()

    @property
    def permission_state(self) -> PermissionState:
        return self._permission_state

    def add_permission_listener(self, listener: PermissionListener) -> None:
        """Call ``listener`` with every future permission state change."""
        with self._listeners_lock:
            self._permission_listeners.append(listener)

    def remove_permission_listener(self, listener: PermissionListener) -> None:
        with self._listeners_lock:
            if listener in self._permission_listeners:
                self._permission_listeners.remove(listener)

    def set_permission_state(self, state: PermissionState) -> None:
        """Record a new authorization state and notify listeners.

        Losing permission stops any running stream.
        """
        if state == self._permission_state:
            return
        self._permission_state = state
        if state is PermissionState.DENIED:
            self.stop()
        with self._listeners_lock:
            listeners = list(self._permission_listeners)
        for listener in listeners:
            listener(state)

    @abstractmethod
    def request_permission(self) -> PermissionState:
        """Ask for location access if undecided and return the resulting state."""

    @abstractmethod
    def start(self) -> Iterator[Coordinate]:
        """Begin producing coordinates.

        Raises:
            PermissionDeniedError: If location access is not granted.
        """

    @abstractmethod
    def stop(self) -> None:
        """End the current stream; its iterator finishes."""


class QueueLocationSource(LocationSource):
    """A location source fed by ``push`` from another thread.

    Used by the HTTP API, where devices post their coordinates. Samples closer
    than ``distance_filter_m`` to the last delivered one are skipped.
    """

    def __init__(
        self,
        permission_state: PermissionState = PermissionState.NOT_DETERMINED,
        distance_filter_m: float = DEFAULT_DISTANCE_FILTER_METERS,
        prompt: Optional[Callable[[], PermissionState]] = None,
    ) -> None:
        super().__init__(permission_state)
        self.distance_filter_m = distance_filter_m
        self._prompt = prompt or (lambda: PermissionState.GRANTED)
        self._lock = threading.Lock()
        self._queue: Optional[queue.Queue] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._queue is not None

    def request_permission(self) -> PermissionState:
        if self.permission_state is PermissionState.NOT_DETERMINED:
            self.set_permission_state(self._prompt())
        return self.permission_state

    def start(self) -> Iterator[Coordinate]:
        if self.permission_state is not PermissionState.GRANTED:
            raise PermissionDeniedError(
                f"Location permission is {self.permission_state.value}."
            )
        with self._lock:
            if self._queue is not None:
                self._queue.put(_STOP)
            samples: queue.Queue = queue.Queue()
            self._queue = samples
        return self._iterate(samples)

    def stop(self) -> None:
        with self._lock:
            if self._queue is not None:
                self._queue.put(_STOP)
                self._queue = None

    def push(self, coordinate: Coordinate) -> bool:
        """Offer a sample to the running stream.

        Returns False when the source is stopped and the sample was dropped.
        """
        if not is_valid_coordinate(coordinate.latitude, coordinate.longitude):
            raise ValidationError(
                f"Coordinate out of range: {coordinate.latitude}, {coordinate.longitude}"
            )
        with self._lock:
            if self._queue is None:
                return False
            self._queue.put(coordinate)
            return True

    def _iterate(self, samples: queue.Queue) -> Iterator[Coordinate]:
        last: Optional[Coordinate] = None
        while True:
            item = samples.get()
            if item is _STOP:
                return
            if (
                last is not None
                and self.distance_filter_m > 0
                and distance_between(last, item) < self.distance_filter_m
            ):
                continue
            last = item
            yield item
