"""Trailing debounce built on an explicit timer."""

from __future__ import annotations

import threading
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

_NOTHING = object()


class Debouncer(Generic[T]):
    """Deliver only the latest submitted value after a quiet period.

    Every ``submit`` replaces the pending value and restarts the countdown.
    When the countdown expires without a newer submission, ``callback`` is
    invoked with the pending value on the timer's thread.
    """

    def __init__(
        self,
        wait: float,
        callback: Callable[[T], Any],
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.wait = wait
        self._callback = callback
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self._pending: Any = _NOTHING
        self._generation = 0

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return self._pending is not _NOTHING

    def submit(self, value: T) -> None:
        """Replace the pending value and restart the countdown."""
        with self._lock:
            self._pending = value
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self.wait, self._fire, args=(self._generation,))
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        """Drop the pending value without delivering it."""
        with self._lock:
            self._generation += 1
            self._pending = _NOTHING
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer that lost the race with submit()/cancel() is ignored.
            if generation != self._generation or self._pending is _NOTHING:
                return
            value = self._pending
            self._pending = _NOTHING
            self._timer = None
        self._callback(value)
