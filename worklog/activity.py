from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

IdleProbe = Callable[[], int]
IdleCallback = Callable[[bool, int], None]

MAX_POLL_SECONDS = 30.0


class IdleState(str, Enum):
    ACTIVE = "active"
    IDLE = "idle"


def next_idle_state(state: IdleState, idle_seconds: int, threshold_seconds: int) -> IdleState:
    # Hysteresis lives in the caller: it fires only when this differs from ``state``.
    return IdleState.IDLE if idle_seconds >= threshold_seconds else IdleState.ACTIVE


@dataclass(frozen=True)
class IdleCheck:
    is_idle: bool
    idle_seconds: int
    checked_at: datetime


def read_idle_seconds(probe: IdleProbe, log: logging.Logger | None = None) -> int:
    """Call the probe; any failure counts as 0 idle seconds (user assumed active)."""
    try:
        return max(0, int(probe()))
    except Exception as exc:
        (log or logging.getLogger(__name__)).warning("Idle probe failed, assuming active: %s", exc)
        return 0


def check_idle_state(probe: IdleProbe, threshold_seconds: int, log: logging.Logger | None = None) -> IdleCheck:
    idle_seconds = read_idle_seconds(probe, log)
    return IdleCheck(
        is_idle=idle_seconds >= threshold_seconds,
        idle_seconds=idle_seconds,
        checked_at=datetime.now().astimezone(),
    )


class IdleMonitor:
    """Polls an idle probe and reports active/idle transitions.

    The callback receives ``(is_idle, idle_seconds)`` once per real transition;
    repeated checks in the same state are silent. Polling happens on a daemon
    thread every ``min(threshold, 30)`` seconds after an immediate first check.
    """

    def __init__(
        self,
        probe: IdleProbe,
        threshold_seconds: int,
        on_change: IdleCallback,
        log: logging.Logger | None = None,
    ):
        self._probe = probe
        self._threshold = threshold_seconds
        self._on_change = on_change
        self._logger = log or logging.getLogger(__name__)
        self._state = IdleState.ACTIVE
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def poll_interval(self) -> float:
        return min(float(self._threshold), MAX_POLL_SECONDS)

    @property
    def state(self) -> IdleState:
        return self._state

    @property
    def running(self) -> bool:
        return self._thread is not None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self.check()
        self._thread = threading.Thread(target=self._poll, name="idle-monitor", daemon=True)
        self._thread.start()
        self._logger.debug("Idle monitor started (every %.0fs)", self.poll_interval)

    def stop(self) -> None:
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join(timeout=5)
        self._thread = None

    def check(self) -> IdleCheck:
        result = check_idle_state(self._probe, self._threshold, self._logger)
        with self._lock:
            previous = self._state
            current = next_idle_state(previous, result.idle_seconds, self._threshold)
            self._state = current
        if current is not previous:
            try:
                self._on_change(current is IdleState.IDLE, result.idle_seconds)
            except Exception as exc:
                self._logger.exception("Idle callback failed: %s", exc)
        return result

    def _poll(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            self.check()


def format_idle_time(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    return f"{seconds // 3600}h {(seconds % 3600) // 60}m"
