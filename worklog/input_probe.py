from __future__ import annotations

import threading
import time
from typing import Optional

from pynput import keyboard, mouse


class InputActivityMonitor:
    """Idle-seconds probe fed by global mouse and keyboard listeners."""

    def __init__(self, log):
        self._logger = log
        self._last_activity = time.monotonic()
        self._lock = threading.Lock()
        self._mouse_listener: Optional[mouse.Listener] = None
        self._keyboard_listener: Optional[keyboard.Listener] = None
        self._available = False

    def start(self) -> None:
        if self._mouse_listener or self._keyboard_listener:
            return

        try:
            self._mouse_listener = mouse.Listener(
                on_move=self._on_mouse, on_click=self._on_mouse, on_scroll=self._on_mouse
            )
            self._keyboard_listener = keyboard.Listener(on_press=self._on_keyboard)
            self._mouse_listener.start()
            self._keyboard_listener.start()
            self._available = True
            self._logger.debug("Input listeners started")
        except Exception as exc:
            # No display or missing accessibility permission: report 0 idle seconds.
            self._logger.warning("Input listeners unavailable, idle detection disabled: %s", exc)
            self.stop()

    def stop(self) -> None:
        if self._mouse_listener:
            self._mouse_listener.stop()
            self._mouse_listener = None
        if self._keyboard_listener:
            self._keyboard_listener.stop()
            self._keyboard_listener = None
        self._available = False

    def _on_mouse(self, *args, **kwargs):
        self._touch()

    def _on_keyboard(self, key):
        self._touch()

    def _touch(self) -> None:
        with self._lock:
            self._last_activity = time.monotonic()

    def idle_seconds(self) -> int:
        if not self._available:
            return 0
        with self._lock:
            last = self._last_activity
        return int(time.monotonic() - last)
