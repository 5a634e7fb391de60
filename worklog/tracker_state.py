from __future__ import annotations

import logging
import os
from datetime import datetime
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Optional

import psutil

from .utils import read_json_file, write_json_atomic

_logger = logging.getLogger(__name__)


def load_state(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return read_json_file(path)
    except (OSError, JSONDecodeError) as exc:
        _logger.warning("Failed to read tracker state: %s", exc)
        return {}


def running_process(path: Path) -> Optional[psutil.Process]:
    """The live observer process recorded in the state file, if there is one."""
    state = load_state(path)
    pid = state.get("pid")
    if not isinstance(pid, int) or state.get("stopped_at") or pid == os.getpid():
        return None
    try:
        process = psutil.Process(pid)
        if process.status() == psutil.STATUS_ZOMBIE:
            return None
        return process
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


def mark_started(path: Path, now: datetime | None = None) -> None:
    write_json_atomic(
        path,
        {
            "pid": os.getpid(),
            "started_at": (now or datetime.now().astimezone()).isoformat(),
            "stopped_at": None,
        },
    )


def mark_stopped(path: Path, now: datetime | None = None) -> None:
    state = load_state(path)
    state["stopped_at"] = (now or datetime.now().astimezone()).isoformat()
    try:
        write_json_atomic(path, state)
    except PermissionError as exc:
        _logger.warning("Failed to update tracker state (file locked): %s", exc)


def stop_process(process: psutil.Process, timeout: float = 5.0) -> bool:
    """Terminate ``process``, killing it if still alive after ``timeout``; True if it was killed."""
    try:
        process.terminate()
    except psutil.NoSuchProcess:
        return False
    _, alive = psutil.wait_procs([process], timeout=timeout)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    return bool(alive)
