"""Tests for the trailing debouncer."""

import threading
import unittest

from trailsync.location.debounce import Debouncer
from tests.mock_utils import ManualTimerFactory


class DebouncerTestCase(unittest.TestCase):
    def setUp(self):
        self.timers = ManualTimerFactory()
        self.delivered = []
        self.debouncer = Debouncer(15.0, self.delivered.append, timer_factory=self.timers)

    def test_delivers_latest_value_after_quiet_period(self):
        self.debouncer.submit("a")
        self.debouncer.submit("b")
        self.debouncer.submit("c")
        self.assertEqual(self.delivered, [])
        self.assertTrue(self.debouncer.has_pending)

        self.timers.fire_pending()

        self.assertEqual(self.delivered, ["c"])
        self.assertFalse(self.debouncer.has_pending)

    def test_each_submit_restarts_the_countdown(self):
        self.debouncer.submit("a")
        first = self.timers.timers[-1]
        self.debouncer.submit("b")
        self.assertTrue(first.cancelled)
        self.assertEqual(len(self.timers.pending()), 1)
        self.assertEqual(self.timers.timers[-1].interval, 15.0)
        self.assertTrue(self.timers.timers[-1].daemon)

    def test_superseded_timer_firing_late_is_ignored(self):
        self.debouncer.submit("a")
        first = self.timers.timers[-1]
        self.debouncer.submit("b")
        # A timer thread that was already running when it was cancelled.
        first.function(*first.args)
        self.assertEqual(self.delivered, [])

        self.timers.fire_pending()
        self.assertEqual(self.delivered, ["b"])

    def test_cancel_drops_pending_value(self):
        self.debouncer.submit("a")
        timer = self.timers.timers[-1]
        self.debouncer.cancel()
        timer.function(*timer.args)
        self.assertEqual(self.delivered, [])
        self.assertFalse(self.debouncer.has_pending)

    def test_separate_bursts_deliver_separately(self):
        self.debouncer.submit("a")
        self.timers.fire_pending()
        self.debouncer.submit("b")
        self.timers.fire_pending()
        self.assertEqual(self.delivered, ["a", "b"])

    def test_real_timer(self):
        delivered = threading.Event()
        values = []

        def callback(value):
            values.append(value)
            delivered.set()

        debouncer = Debouncer(0.01, callback)
        debouncer.submit(1)
        debouncer.submit(2)
        self.assertTrue(delivered.wait(timeout=2))
        self.assertEqual(values, [2])


if __name__ == "__main__":
    unittest.main()
