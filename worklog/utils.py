from __future__ import annotations

import json
import os
import random
import time
from datetime import datetime, timedelta, timezone, tzinfo
from json import JSONDecodeError
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def ensure_directory(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


def timestamp_slug(ts: datetime) -> str:
    return ts.strftime("%Y%m%d-%H%M%S")


def _local_struct(dt: datetime | None) -> time.struct_time:
    dt = dt or datetime.now()
    return time.localtime(
        time.mktime((dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second, dt.weekday(), 0, -1))
    )


class SystemLocalZone(tzinfo):
    """The host's local zone, with the UTC offset looked up per wall-clock time."""

    def utcoffset(self, dt: datetime | None) -> timedelta:
        return timedelta(seconds=_local_struct(dt).tm_gmtoff)

    def dst(self, dt: datetime | None) -> timedelta:
        if _local_struct(dt).tm_isdst > 0:
            return timedelta(seconds=time.timezone - time.altzone)
        return timedelta(0)

    def tzname(self, dt: datetime | None) -> str:
        return _local_struct(dt).tm_zone

    def __repr__(self) -> str:
        return "SystemLocalZone()"


def _system_zone_key() -> str | None:
    key = os.environ.get("TZ", "").lstrip(":")
    if key:
        return key
    target = os.path.realpath("/etc/localtime")
    if "zoneinfo/" in target:
        return target.split("zoneinfo/", 1)[1]
    try:
        key = Path("/etc/timezone").read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return key or None


def local_timezone() -> tzinfo:
    """DST-aware local zone: the system's IANA zone when its key resolves, else ``SystemLocalZone``."""
    key = _system_zone_key()
    if not key:
        return SystemLocalZone()
    try:
        return ZoneInfo(key)
    except (ZoneInfoNotFoundError, ValueError):
        return SystemLocalZone()


def aware(ts: datetime) -> datetime:
    """Attach the local zone to naive datetimes; aware ones pass through."""
    if ts.tzinfo is None:
        return ts.astimezone()
    return ts


def to_storage_time(ts: datetime) -> str:
    # Fixed-width UTC text so SQLite string comparison matches time order.
    return aware(ts).astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_storage_time(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def read_json_file(path: Path) -> dict[str, Any]:
    # A writer may be mid-replace; retry once before giving up.
    for _ in range(2):
        try:
            raw = path.read_text(encoding="utf-8")
            if not raw.strip():
                return {}
            data = json.loads(raw)
            return data if isinstance(data, dict) else {}
        except (OSError, JSONDecodeError):
            time.sleep(0.05)
    raw = path.read_text(encoding="utf-8")
    data = json.loads(raw)
    return data if isinstance(data, dict) else {}


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    ensure_directory(path.parent)
    tmp = path.with_suffix(path.suffix + f".tmp.{os.getpid()}")
    tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
    # The target can be briefly locked by sync tools on Windows.
    for attempt in range(8):
        try:
            os.replace(tmp, path)
            return
        except PermissionError:
            time.sleep(0.05 * (attempt + 1) + random.random() * 0.02)
    os.replace(tmp, path)
