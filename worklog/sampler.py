from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence

from .activity import IdleProbe, check_idle_state
from .capture import CaptureSkipped, ScreenshotCapturer
from .classifier import ClassificationRequest, ClassifierGateway
from .config import CaptureSettings
from .logging_utils import ThrottledLog
from .models import Project, TaskAnalysis, TimeEntry, WindowInfo
from .storage import EntryRepository
from .window import categorize_app, should_exclude_window

WindowProbe = Callable[[], Optional[WindowInfo]]


def _now() -> datetime:
    return datetime.now().astimezone()


class ActivitySampler:
    """One capture cycle per tick: gate, back-fill the open entry, append, classify.

    A cycle is finished once the new entry is stored. Classification runs on
    the executor and patches the entry whenever it completes; it is dropped
    if the process shuts down first.
    """

    def __init__(
        self,
        capture: CaptureSettings,
        projects: Sequence[Project],
        repository: EntryRepository,
        gateway: ClassifierGateway,
        window_probe: WindowProbe,
        idle_probe: IdleProbe,
        screenshotter: ScreenshotCapturer | None,
        log: logging.Logger | None = None,
        executor: ThreadPoolExecutor | None = None,
        clock: Callable[[], datetime] = _now,
    ):
        self._capture = capture
        self._projects = tuple(projects)
        self._repository = repository
        self._gateway = gateway
        self._window_probe = window_probe
        self._idle_probe = idle_probe
        self._screenshotter = screenshotter
        self._logger = log or logging.getLogger(__name__)
        self._executor = executor or ThreadPoolExecutor(max_workers=3, thread_name_prefix="classify")
        self._clock = clock
        self._skips = ThrottledLog(self._logger, interval=60.0)

    def capture_and_analyze(self) -> Optional[int]:
        """Run one cycle; returns the new entry id, or None when the cycle was skipped or failed."""
        try:
            idle = check_idle_state(self._idle_probe, self._capture.idle_threshold_seconds, self._logger)
            if idle.is_idle:
                raise CaptureSkipped("idle", f"idle for {idle.idle_seconds}s")

            window = self._window_probe()
            if window is None:
                raise CaptureSkipped("no_window", "no active window")
            if should_exclude_window(window, self._capture.excluded_apps):
                raise CaptureSkipped("excluded", f"{window.app_name} is excluded")

            now = self._clock()
            closed_id = self._repository.close_open_duration(now)
            if closed_id is not None:
                self._logger.debug("Closed duration of entry %s", closed_id)

            screenshot = self._take_screenshot(now)
            entry_id = self._repository.append(
                TimeEntry(
                    timestamp=now,
                    app_name=window.app_name,
                    window_title=window.title,
                    screenshot_path=screenshot,
                    is_idle=False,
                )
            )
        except CaptureSkipped as exc:
            self._skips.log(exc.reason, time.monotonic(), logging.INFO, "Skipping capture: %s", exc)
            return None
        except Exception as exc:
            self._logger.exception("Capture cycle failed: %s", exc)
            return None

        self._logger.info("Captured entry %s: %s", entry_id, window.app_name)
        self.dispatch_classification(
            ClassificationRequest(
                entry_id=entry_id,
                window=window,
                app_category=categorize_app(window.app_name),
                screenshot_path=screenshot,
            )
        )
        return entry_id

    def dispatch_classification(self, request: ClassificationRequest) -> Optional[Future]:
        try:
            return self._executor.submit(self._classify_and_patch, request)
        except RuntimeError as exc:
            # Executor already shut down.
            self._logger.warning("Classification for entry %s not scheduled: %s", request.entry_id, exc)
            return None

    def _classify_and_patch(self, request: ClassificationRequest) -> Optional[TaskAnalysis]:
        try:
            analysis = self._gateway.classify(
                request.window, request.app_category, self._projects, request.screenshot_path
            )
            self._repository.patch_classification(
                request.entry_id,
                analysis.task_description,
                analysis.suggested_project_id,
                json.dumps(analysis.to_dict(), ensure_ascii=False),
            )
        except Exception as exc:
            self._logger.exception("Failed to store classification for entry %s: %s", request.entry_id, exc)
            return None
        self._logger.debug(
            "Entry %s classified as %s (%s)", request.entry_id, analysis.category.value, analysis.task_description
        )
        return analysis

    def _take_screenshot(self, now: datetime) -> Optional[Path]:
        if self._screenshotter is None:
            return None
        try:
            return self._screenshotter.capture(now)
        except Exception as exc:
            self._logger.warning("Screenshot failed, storing entry without one: %s", exc)
            return None

    def run(self, stop_event: threading.Event) -> None:
        """Capture now, then on a fixed-rate schedule until ``stop_event`` is set."""
        interval = float(self._capture.interval_seconds)
        next_tick = time.monotonic()
        while not stop_event.is_set():
            self.capture_and_analyze()
            next_tick += interval
            now = time.monotonic()
            if next_tick <= now:
                # Overran one or more slots; resume on the next future one.
                next_tick += (int((now - next_tick) // interval) + 1) * interval
            if stop_event.wait(next_tick - now):
                break

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
