from __future__ import annotations

import argparse
import signal
import sqlite3
import sys
import threading

from worklog.activity import IdleMonitor, format_idle_time
from worklog.capture import ScreenshotCapturer
from worklog.classifier import ClassifierGateway, create_backend
from worklog.config import ConfigError, get_settings
from worklog.input_probe import InputActivityMonitor
from worklog.logging_utils import init_logger
from worklog.sampler import ActivitySampler
from worklog.storage import EntryRepository
from worklog.tracker_state import mark_started, mark_stopped, running_process
from worklog.window import ActiveWindowProbe


def main() -> None:
    parser = argparse.ArgumentParser(description="Worklog tracker: sample the active window on a fixed interval")
    parser.add_argument("--no-screenshots", action="store_true", help="Record entries without capturing the screen")
    args = parser.parse_args()

    try:
        settings = get_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    logger = init_logger("observer", settings.logging.directory, settings.logging.level)
    state_path = settings.storage.state_path

    existing = running_process(state_path)
    if existing is not None:
        logger.warning("Tracker is already running (pid=%s)", existing.pid)
        return

    try:
        repository = EntryRepository(settings.storage.database_path, logger)
        gateway = ClassifierGateway(create_backend(settings.llm, logger), logger)
    except (ConfigError, sqlite3.Error) as exc:
        logger.exception("Observer failed to start: %s", exc)
        sys.exit(1)

    input_monitor = InputActivityMonitor(logger)
    input_monitor.start()

    def _on_idle_change(is_idle: bool, idle_seconds: int) -> None:
        if is_idle:
            logger.info("User is idle (%s)", format_idle_time(idle_seconds))
        else:
            logger.info("User is active again")

    idle_monitor = IdleMonitor(
        input_monitor.idle_seconds, settings.capture.idle_threshold_seconds, _on_idle_change, logger
    )
    screenshotter = None
    if not args.no_screenshots:
        screenshotter = ScreenshotCapturer(
            settings.capture.screenshot_dir,
            blur=settings.capture.blur_screenshots,
            blur_intensity=settings.capture.blur_intensity,
            log=logger,
        )
    sampler = ActivitySampler(
        settings.capture,
        settings.projects,
        repository,
        gateway,
        window_probe=ActiveWindowProbe(logger),
        idle_probe=input_monitor.idle_seconds,
        screenshotter=screenshotter,
        log=logger,
    )

    stop_event = threading.Event()

    def _graceful_stop(signum, frame):
        stop_event.set()
        logger.info("Received signal %s - shutting down observer", signum)

    signal.signal(signal.SIGINT, _graceful_stop)
    signal.signal(signal.SIGTERM, _graceful_stop)

    mark_started(state_path)
    logger.info(
        "Observer started: interval=%sm idle_threshold=%ss blur=%s projects=%s",
        settings.capture.interval_minutes,
        settings.capture.idle_threshold_seconds,
        "on" if settings.capture.blur_screenshots else "off",
        len(settings.projects),
    )

    idle_monitor.start()
    try:
        sampler.run(stop_event)
    finally:
        idle_monitor.stop()
        input_monitor.stop()
        sampler.shutdown()
        mark_stopped(state_path)
        logger.info("Observer stopped")


if __name__ == "__main__":
    main()
