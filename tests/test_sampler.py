from __future__ import annotations

import tempfile
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest import mock

from worklog.config import CaptureSettings
from worklog.models import TaskAnalysis, WindowInfo, WorkCategory
from worklog.sampler import ActivitySampler
from worklog.storage import EntryRepository

BASE = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


class FakeGateway:
    def __init__(self) -> None:
        self.calls = []

    def classify(self, window, app_category, projects, screenshot_path=None):
        self.calls.append((window.app_name, app_category, screenshot_path))
        return TaskAnalysis(
            task_description=f"Editing in {window.app_name}",
            suggested_project_id="alpha",
            confidence=0.8,
            category=WorkCategory.CODING,
        )


class ActivitySamplerTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        root = Path(self._tmp.name)
        self.repo = EntryRepository(root / "worklog.db")
        self.capture = CaptureSettings(
            interval_minutes=5,
            idle_threshold_seconds=300,
            screenshot_dir=root / "screenshots",
            blur_screenshots=False,
            blur_intensity=20,
            excluded_apps=("1password",),
            retention_days=30,
        )
        self.gateway = FakeGateway()
        self.executor = ThreadPoolExecutor(max_workers=3)
        self.window = WindowInfo(app_name="Code", title="main.py")
        self.idle_seconds = 0
        self.times = iter([BASE, BASE + timedelta(minutes=10), BASE + timedelta(minutes=20)])
        self.screenshotter = mock.Mock()
        self.screenshotter.capture.side_effect = lambda ts: root / f"{ts:%H%M}.jpg"

    def tearDown(self) -> None:
        self.executor.shutdown(wait=True)
        self._tmp.cleanup()

    def _sampler(self, **overrides) -> ActivitySampler:
        values = dict(
            capture=self.capture,
            projects=(),
            repository=self.repo,
            gateway=self.gateway,
            window_probe=lambda: self.window,
            idle_probe=lambda: self.idle_seconds,
            screenshotter=self.screenshotter,
            executor=self.executor,
            clock=lambda: next(self.times),
        )
        values.update(overrides)
        return ActivitySampler(**values)

    def test_consecutive_cycles_close_previous_duration_and_classify(self) -> None:
        sampler = self._sampler()
        first = sampler.capture_and_analyze()
        second = sampler.capture_and_analyze()
        self.executor.shutdown(wait=True)

        self.assertEqual(self.repo.get(first).duration_seconds, 600)
        latest = self.repo.get(second)
        self.assertIsNone(latest.duration_seconds)
        self.assertEqual(latest.screenshot_path.name, "0910.jpg")
        self.assertEqual(latest.task_description, "Editing in Code")
        self.assertEqual(latest.project_id, "alpha")
        self.assertEqual(latest.category, WorkCategory.CODING)
        self.assertEqual(self.gateway.calls[0][1], "editor")

    def test_idle_cycle_is_skipped_without_backfill(self) -> None:
        sampler = self._sampler()
        first = sampler.capture_and_analyze()
        self.idle_seconds = 900

        self.assertIsNone(sampler.capture_and_analyze())
        self.assertIsNone(self.repo.get(first).duration_seconds)
        self.assertEqual(self.repo.last_entry().id, first)

    def test_missing_window_is_skipped(self) -> None:
        self.assertIsNone(self._sampler(window_probe=lambda: None).capture_and_analyze())
        self.assertIsNone(self.repo.last_entry())

    def test_excluded_app_is_skipped(self) -> None:
        self.window = WindowInfo(app_name="1Password 8", title="Vault")
        self.assertIsNone(self._sampler().capture_and_analyze())
        self.assertIsNone(self.repo.last_entry())
        self.assertEqual(self.gateway.calls, [])

    def test_screenshot_failure_still_records_entry(self) -> None:
        self.screenshotter.capture.side_effect = OSError("display unavailable")
        entry_id = self._sampler().capture_and_analyze()

        self.assertIsNotNone(entry_id)
        self.assertIsNone(self.repo.get(entry_id).screenshot_path)

    def test_store_failure_is_logged_not_raised(self) -> None:
        broken = mock.Mock()
        broken.close_open_duration.side_effect = RuntimeError("disk I/O error")
        sampler = self._sampler(repository=broken)

        with self.assertLogs("worklog.sampler", level="ERROR"):
            self.assertIsNone(sampler.capture_and_analyze())

    def test_run_captures_immediately_and_stops(self) -> None:
        stop_event = threading.Event()

        def probe():
            stop_event.set()
            return self.window

        sampler = self._sampler(window_probe=probe)
        sampler.run(stop_event)

        self.assertIsNotNone(self.repo.last_entry())

    def test_dispatch_after_shutdown_is_dropped(self) -> None:
        sampler = self._sampler()
        sampler.shutdown()
        entry_id = sampler.capture_and_analyze()

        self.assertIsNotNone(entry_id)
        self.assertIsNone(self.repo.get(entry_id).task_description)
        self.assertEqual(self.gateway.calls, [])


if __name__ == "__main__":
    unittest.main()
