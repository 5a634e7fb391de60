from __future__ import annotations

import logging
import os
import re
import subprocess
import sys
import time
from typing import Iterable, Optional

import psutil

from .logging_utils import ThrottledLog
from .models import WindowInfo

_OSASCRIPT = """
tell application "System Events"
    set frontApp to first application process whose frontmost is true
    set appName to name of frontApp
    set bundleId to bundle identifier of frontApp
    set pid to unix id of frontApp
    try
        set windowTitle to name of first window of frontApp
    on error
        set windowTitle to ""
    end try
    return appName & "|||" & windowTitle & "|||" & bundleId & "|||" & pid
end tell
"""

_APP_CATEGORIES = (
    ("browser", ("chrome", "firefox", "safari", "edge", "brave", "arc")),
    (
        "editor",
        ("code", "sublime", "atom", "vim", "nvim", "emacs", "xcode", "intellij", "webstorm", "pycharm", "cursor"),
    ),
    ("terminal", ("terminal", "iterm", "warp", "kitty", "alacritty", "hyper")),
    ("communication", ("slack", "discord", "teams", "zoom", "meet", "mail", "outlook", "messages")),
    ("design", ("figma", "sketch", "photoshop", "illustrator", "affinity", "canva")),
)

_SENSITIVE_PATTERNS = (
    re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
    re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"),
    re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b"),
    re.compile(r"https?://[^\s]*token=[^\s&]*", re.IGNORECASE),
    re.compile(r"https?://[^\s]*key=[^\s&]*", re.IGNORECASE),
    re.compile(r"https?://[^\s]*secret=[^\s&]*", re.IGNORECASE),
)

_FILE_PATTERNS = (
    re.compile(r"^(.+?)\s[—-]\s"),
    re.compile(r"^(.+?)\s[•·]\s"),
    re.compile(r"^([^/\\]+\.[a-z]{1,10})(?:\s|$)", re.IGNORECASE),
)


class ActiveWindowProbe:
    """Reads the frontmost application; returns None when it cannot be determined."""

    def __init__(self, log: logging.Logger | None = None):
        self._logger = log or logging.getLogger(__name__)
        self._warnings = ThrottledLog(self._logger, interval=60.0)

    def __call__(self) -> Optional[WindowInfo]:
        try:
            if os.name == "nt":
                return _windows_active_window()
            if sys.platform == "darwin":
                return _macos_active_window()
            self._warnings.log(
                "unsupported", time.monotonic(), logging.WARNING,
                "Active window detection is not supported on %s", sys.platform,
            )
            return None
        except Exception as exc:
            self._warnings.log(
                "probe_error", time.monotonic(), logging.WARNING, "Error getting active window: %s", exc
            )
            return None


def _windows_active_window() -> Optional[WindowInfo]:
    import ctypes
    from ctypes import wintypes

    user32 = ctypes.windll.user32
    hwnd = user32.GetForegroundWindow()
    if not hwnd:
        return None

    length = user32.GetWindowTextLengthW(hwnd)
    buffer = ctypes.create_unicode_buffer(length + 1)
    user32.GetWindowTextW(hwnd, buffer, length + 1)

    pid = wintypes.DWORD()
    user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
    exe_name = "Unknown"
    exe_path = None
    if pid.value:
        try:
            process = psutil.Process(pid.value)
            exe_name = process.name()
            exe_path = process.exe()
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            exe_name = f"PID-{pid.value}"
    return WindowInfo(app_name=exe_name, title=buffer.value or "", bundle_id=exe_path, pid=int(pid.value))


def _macos_active_window() -> Optional[WindowInfo]:
    result = subprocess.run(
        ["osascript", "-e", _OSASCRIPT],
        capture_output=True,
        text=True,
        timeout=10,
        check=True,
    )
    parts = result.stdout.strip().split("|||")
    if len(parts) < 4:
        return None
    try:
        pid = int(parts[3])
    except ValueError:
        pid = 0
    return WindowInfo(app_name=parts[0], title=parts[1], bundle_id=parts[2] or None, pid=pid)


def should_exclude_window(window: WindowInfo, excluded_apps: Iterable[str]) -> bool:
    app_name = window.app_name.lower()
    return any(excluded.lower() in app_name for excluded in excluded_apps if excluded)


def categorize_app(app_name: str) -> str:
    name = app_name.lower()
    for category, keywords in _APP_CATEGORIES:
        if any(keyword in name for keyword in keywords):
            return category
    return "other"


def sanitize_window_title(title: str) -> str:
    sanitized = title
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub("[REDACTED]", sanitized)
    return sanitized


def extract_window_context(window: WindowInfo) -> dict:
    """Redacted title plus the open file name, when the title carries one."""
    context = sanitize_window_title(window.title)
    file_name = None
    for pattern in _FILE_PATTERNS:
        match = pattern.search(context)
        if match and match.group(1):
            file_name = match.group(1)
            break
    return {
        "app": window.app_name,
        "context": context,
        "is_file_open": file_name is not None,
        "file_name": file_name,
    }


def common_excluded_apps() -> list[str]:
    return [
        "1Password",
        "Keychain Access",
        "System Preferences",
        "System Settings",
        "Finder",
        "Preview",
        "Screenshot",
        "Screen Sharing",
        "FaceTime",
        "Photo Booth",
        "QuickTime Player",
    ]
