from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path

from PIL import Image, ImageFilter

from .utils import ensure_directory, timestamp_slug


class CaptureSkipped(RuntimeError):
    """Raised to end a capture cycle early; ``reason`` is a stable key for log throttling."""

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class ScreenshotCapturer:
    def __init__(self, screenshot_dir: Path, blur: bool = False, blur_intensity: int = 20, log=None):
        self._screenshot_dir = ensure_directory(screenshot_dir)
        self._blur = blur
        self._blur_intensity = blur_intensity
        self._logger = log or logging.getLogger(__name__)

    def path_for(self, timestamp: datetime) -> Path:
        folder = ensure_directory(self._screenshot_dir / timestamp.strftime("%Y-%m-%d"))
        return folder / f"screenshot-{timestamp_slug(timestamp)}-{timestamp.microsecond:06d}.jpg"

    def capture(self, timestamp: datetime) -> Path:
        """Grab the full screen to a JPEG and return its path; raises on failure."""
        # pyautogui connects to the display on import.
        import pyautogui

        pyautogui.FAILSAFE = False
        path = self.path_for(timestamp)
        screenshot = pyautogui.screenshot()
        screenshot.convert("RGB").save(path, "JPEG", quality=80)

        if self._blur and self._blur_intensity > 0:
            try:
                blur_image(path, self._blur_intensity)
            except OSError as exc:
                self._logger.warning("Blur failed for %s, keeping original: %s", path.name, exc)

        self._logger.debug("Captured screenshot %s", path.name)
        return path


def blur_image(path: Path, intensity: int) -> None:
    radius = max(1.0, intensity / 5.0)
    with Image.open(path) as image:
        blurred = image.convert("RGB").filter(ImageFilter.GaussianBlur(radius=radius))
    blurred.save(path, "JPEG", quality=80)


def cleanup_old_screenshots(screenshot_dir: Path, retention_days: int = 30, log=None) -> int:
    logger = log or logging.getLogger(__name__)
    if not screenshot_dir.exists():
        return 0

    cutoff = (datetime.now() - timedelta(days=retention_days)).timestamp()
    deleted = 0
    for path in screenshot_dir.rglob("*.jpg"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                deleted += 1
        except OSError as exc:
            logger.warning("Failed to delete %s: %s", path, exc)

    for folder in sorted((p for p in screenshot_dir.iterdir() if p.is_dir()), reverse=True):
        if not any(folder.iterdir()):
            folder.rmdir()
    return deleted


def screenshots_size(screenshot_dir: Path) -> int:
    if not screenshot_dir.exists():
        return 0
    return sum(path.stat().st_size for path in screenshot_dir.rglob("*.jpg") if path.is_file())


def format_bytes(size: int) -> str:
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    return f"{round(value, 2):g} {units[index]}"
