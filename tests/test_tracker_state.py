from __future__ import annotations

import json
import os
import tempfile
import unittest
from pathlib import Path

from worklog.tracker_state import load_state, mark_started, mark_stopped, running_process


class TrackerStateTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "tracker_state.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_start_then_stop_round_trip(self) -> None:
        mark_started(self.path)
        state = load_state(self.path)
        self.assertEqual(state["pid"], os.getpid())
        self.assertIsNone(state["stopped_at"])

        mark_stopped(self.path)
        self.assertIsNotNone(load_state(self.path)["stopped_at"])

    def test_no_running_process_without_state(self) -> None:
        self.assertIsNone(running_process(self.path))

    def test_own_pid_is_not_reported_as_running(self) -> None:
        mark_started(self.path)
        self.assertIsNone(running_process(self.path))

    def test_dead_pid_is_not_running(self) -> None:
        self.path.write_text(json.dumps({"pid": 2**22 + 12345, "stopped_at": None}), encoding="utf-8")
        self.assertIsNone(running_process(self.path))


if __name__ == "__main__":
    unittest.main()
