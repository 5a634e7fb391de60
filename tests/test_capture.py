from __future__ import annotations

import os
import tempfile
import time
import unittest
from datetime import datetime
from pathlib import Path

from PIL import Image

from worklog.capture import (
    ScreenshotCapturer,
    blur_image,
    cleanup_old_screenshots,
    format_bytes,
    screenshots_size,
)


class ScreenshotHousekeepingTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _image(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        image = Image.new("RGB", (32, 32), "white")
        for x in range(16):
            image.putpixel((x, x), (0, 0, 0))
        image.save(path, "JPEG")
        return path

    def test_path_for_uses_day_folder(self) -> None:
        capturer = ScreenshotCapturer(self.root)
        path = capturer.path_for(datetime(2026, 1, 5, 9, 30, 15, 42))
        self.assertEqual(path.parent.name, "2026-01-05")
        self.assertEqual(path.name, "screenshot-20260105-093015-000042.jpg")

    def test_blur_rewrites_image_in_place(self) -> None:
        path = self._image(self.root / "shot.jpg")
        before = path.read_bytes()
        blur_image(path, 20)
        self.assertNotEqual(path.read_bytes(), before)
        with Image.open(path) as image:
            self.assertEqual(image.size, (32, 32))

    def test_cleanup_removes_old_files_and_empty_folders(self) -> None:
        old = self._image(self.root / "2025-11-01" / "old.jpg")
        fresh = self._image(self.root / "2026-01-05" / "fresh.jpg")
        stale = time.time() - 40 * 86400
        os.utime(old, (stale, stale))

        self.assertEqual(cleanup_old_screenshots(self.root, retention_days=30), 1)
        self.assertFalse(old.exists())
        self.assertFalse((self.root / "2025-11-01").exists())
        self.assertTrue(fresh.exists())
        self.assertEqual(screenshots_size(self.root), fresh.stat().st_size)

    def test_cleanup_of_missing_directory(self) -> None:
        self.assertEqual(cleanup_old_screenshots(self.root / "missing"), 0)
        self.assertEqual(screenshots_size(self.root / "missing"), 0)

    def test_format_bytes(self) -> None:
        self.assertEqual(format_bytes(0), "0 Bytes")
        self.assertEqual(format_bytes(512), "512 Bytes")
        self.assertEqual(format_bytes(1536), "1.5 KB")
        self.assertEqual(format_bytes(5 * 1024 * 1024), "5 MB")


if __name__ == "__main__":
    unittest.main()
