from __future__ import annotations

import logging
import unittest

from worklog.activity import IdleMonitor, IdleState, check_idle_state, format_idle_time, next_idle_state


class IdleStateTests(unittest.TestCase):
    def test_transition_function(self) -> None:
        self.assertIs(next_idle_state(IdleState.ACTIVE, 299, 300), IdleState.ACTIVE)
        self.assertIs(next_idle_state(IdleState.ACTIVE, 300, 300), IdleState.IDLE)
        self.assertIs(next_idle_state(IdleState.IDLE, 0, 300), IdleState.ACTIVE)

    def test_check_idle_state(self) -> None:
        self.assertTrue(check_idle_state(lambda: 600, 300).is_idle)
        self.assertFalse(check_idle_state(lambda: 10, 300).is_idle)


class IdleMonitorTests(unittest.TestCase):
    def test_callback_fires_once_per_transition(self) -> None:
        readings = iter([0, 0, 400, 400, 0])
        calls = []
        monitor = IdleMonitor(lambda: next(readings), 300, lambda idle, secs: calls.append((idle, secs)))

        for _ in range(5):
            monitor.check()

        self.assertEqual(calls, [(True, 400), (False, 0)])
        self.assertIs(monitor.state, IdleState.ACTIVE)

    def test_probe_failure_counts_as_active(self) -> None:
        calls = []

        def broken() -> int:
            raise OSError("no display")

        monitor = IdleMonitor(broken, 300, lambda idle, secs: calls.append(idle), logging.getLogger("test.idle"))
        with self.assertLogs("test.idle", level="WARNING"):
            result = monitor.check()

        self.assertEqual(result.idle_seconds, 0)
        self.assertEqual(calls, [])

    def test_start_and_stop_are_idempotent(self) -> None:
        probe_calls = []

        def probe() -> int:
            probe_calls.append(1)
            return 0

        monitor = IdleMonitor(probe, 600, lambda idle, secs: None)
        self.assertEqual(monitor.poll_interval, 30.0)

        monitor.start()
        monitor.start()
        self.assertTrue(monitor.running)
        self.assertEqual(len(probe_calls), 1)

        monitor.stop()
        monitor.stop()
        self.assertFalse(monitor.running)

    def test_poll_interval_follows_small_threshold(self) -> None:
        self.assertEqual(IdleMonitor(lambda: 0, 10, lambda idle, secs: None).poll_interval, 10.0)


class FormatIdleTimeTests(unittest.TestCase):
    def test_formats(self) -> None:
        self.assertEqual(format_idle_time(45), "45s")
        self.assertEqual(format_idle_time(125), "2m 5s")
        self.assertEqual(format_idle_time(3720), "1h 2m")


if __name__ == "__main__":
    unittest.main()
