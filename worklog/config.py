from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import tzinfo
from functools import lru_cache
from json import JSONDecodeError
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from .models import Project
from .utils import local_timezone, read_json_file, write_json_atomic

USER_CONFIG_FILE = "config.json"
LLM_PROVIDERS = ("proxy", "gemini")

_logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class CaptureSettings:
    interval_minutes: int
    idle_threshold_seconds: int
    screenshot_dir: Path
    blur_screenshots: bool
    blur_intensity: int
    excluded_apps: Tuple[str, ...]
    retention_days: int

    @property
    def interval_seconds(self) -> int:
        return self.interval_minutes * 60


@dataclass(frozen=True)
class LLMSettings:
    provider: str
    proxy_url: str | None
    proxy_api_key: str | None
    gemini_api_key: str | None
    vision_model: str
    text_model: str
    max_tokens: int
    temperature: float
    timeout_seconds: float


@dataclass(frozen=True)
class StorageSettings:
    data_dir: Path
    database_path: Path

    @property
    def user_config_path(self) -> Path:
        return self.data_dir / USER_CONFIG_FILE

    @property
    def state_path(self) -> Path:
        return self.data_dir / "tracker_state.json"


@dataclass(frozen=True)
class LoggingSettings:
    directory: Path
    level: str = "INFO"


@dataclass(frozen=True)
class OutputSettings:
    export_dir: Path


@dataclass(frozen=True)
class AppSettings:
    timezone: tzinfo
    capture: CaptureSettings
    llm: LLMSettings
    storage: StorageSettings
    logging: LoggingSettings
    output: OutputSettings
    projects: Tuple[Project, ...]


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    dotenv_path = Path(__file__).resolve().parents[1] / ".env"
    load_dotenv(dotenv_path=dotenv_path, override=False, encoding="utf-8-sig")
    return load_settings()


def load_settings() -> AppSettings:
    """Build settings from the environment, then apply ``$DATA_DIR/config.json``."""
    data_dir = Path(os.getenv("DATA_DIR", "data")).resolve()
    storage = StorageSettings(
        data_dir=data_dir,
        database_path=Path(os.getenv("DATABASE_PATH", str(data_dir / "worklog.db"))).resolve(),
    )
    user = load_user_config(storage.user_config_path)

    tz_name = os.getenv("TIMEZONE")
    try:
        timezone = ZoneInfo(tz_name) if tz_name else local_timezone()
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown TIMEZONE {tz_name!r}") from exc

    excluded = user.get("excluded_apps")
    if not isinstance(excluded, list):
        excluded = _split_list(os.getenv("EXCLUDED_APPS", ""))

    capture_values = {
        "capture_interval_minutes": _as_int(
            user.get("capture_interval_minutes", os.getenv("CAPTURE_INTERVAL_MINUTES", "5")),
            "capture_interval_minutes",
        ),
        "idle_threshold_seconds": _as_int(
            user.get("idle_threshold_seconds", os.getenv("IDLE_THRESHOLD_SECONDS", "300")),
            "idle_threshold_seconds",
        ),
        "blur_intensity": _as_int(user.get("blur_intensity", os.getenv("BLUR_INTENSITY", "20")), "blur_intensity"),
        "llm_provider": str(user.get("llm_provider", os.getenv("LLM_PROVIDER", "proxy"))).strip().lower(),
    }
    errors = validate_overrides(capture_values)
    if errors:
        raise ConfigError("Invalid configuration: " + "; ".join(errors))

    capture = CaptureSettings(
        interval_minutes=capture_values["capture_interval_minutes"],
        idle_threshold_seconds=capture_values["idle_threshold_seconds"],
        screenshot_dir=Path(os.getenv("SCREENSHOT_DIR", str(data_dir / "screenshots"))).resolve(),
        blur_screenshots=_as_bool(user.get("blur_screenshots", os.getenv("BLUR_SCREENSHOTS")), default=False),
        blur_intensity=capture_values["blur_intensity"],
        excluded_apps=tuple(str(app) for app in excluded if str(app).strip()),
        retention_days=_as_int(os.getenv("RETENTION_DAYS", "30"), "RETENTION_DAYS"),
    )

    default_model = "gemini-2.0-flash"
    llm = LLMSettings(
        provider=capture_values["llm_provider"],
        proxy_url=(user.get("llm_proxy_url") or os.getenv("LLM_PROXY_URL") or None),
        proxy_api_key=os.getenv("LLM_PROXY_API_KEY") or None,
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        vision_model=str(user.get("llm_vision_model") or os.getenv("LLM_VISION_MODEL", default_model)),
        text_model=str(user.get("llm_text_model") or os.getenv("LLM_TEXT_MODEL", default_model)),
        max_tokens=_as_int(os.getenv("LLM_MAX_TOKENS", "1000"), "LLM_MAX_TOKENS"),
        temperature=float(os.getenv("LLM_TEMPERATURE", "0.3")),
        timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
    )

    logging_settings = LoggingSettings(
        directory=Path(os.getenv("LOG_DIR", "logs")).resolve(),
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )

    output_settings = OutputSettings(
        export_dir=Path(os.getenv("REPORT_EXPORT_DIR", "reports")).resolve(),
    )

    projects = tuple(Project.from_dict(raw) for raw in user.get("projects") or [] if isinstance(raw, dict) and raw.get("id"))

    return AppSettings(
        timezone=timezone,
        capture=capture,
        llm=llm,
        storage=storage,
        logging=logging_settings,
        output=output_settings,
        projects=projects,
    )


def validate_overrides(values: Dict[str, Any]) -> List[str]:
    errors: List[str] = []

    interval = values.get("capture_interval_minutes")
    if interval is not None and not 1 <= int(interval) <= 60:
        errors.append("Capture interval must be between 1 and 60 minutes")

    idle = values.get("idle_threshold_seconds")
    if idle is not None and not 30 <= int(idle) <= 3600:
        errors.append("Idle threshold must be between 30 and 3600 seconds")

    blur = values.get("blur_intensity")
    if blur is not None and not 0 <= int(blur) <= 100:
        errors.append("Blur intensity must be between 0 and 100")

    provider = values.get("llm_provider")
    if provider is not None and provider not in LLM_PROVIDERS:
        errors.append(f"LLM provider must be one of: {', '.join(LLM_PROVIDERS)}")

    return errors


def load_user_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return read_json_file(path)
    except (OSError, JSONDecodeError) as exc:
        _logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}


def save_user_config(path: Path, data: Dict[str, Any]) -> None:
    write_json_atomic(path, data)


def update_user_config(path: Path, **updates: Any) -> Dict[str, Any]:
    config = load_user_config(path)
    config.update(updates)
    save_user_config(path, config)
    return config


def add_project(path: Path, project: Project) -> Dict[str, Any]:
    config = load_user_config(path)
    projects = list(config.get("projects") or [])
    if any(isinstance(p, dict) and p.get("id") == project.id for p in projects):
        raise ValueError(f'Project with ID "{project.id}" already exists')
    projects.append(project.to_dict())
    config["projects"] = projects
    save_user_config(path, config)
    return config


def remove_project(path: Path, project_id: str) -> bool:
    config = load_user_config(path)
    projects = list(config.get("projects") or [])
    remaining = [p for p in projects if not (isinstance(p, dict) and p.get("id") == project_id)]
    config["projects"] = remaining
    save_user_config(path, config)
    return len(remaining) != len(projects)


def exclude_apps(path: Path, app_names: Sequence[str], current: Sequence[str] = ()) -> List[str]:
    """Append ``app_names`` to the excluded list and return the ones newly added.

    ``current`` seeds the list when ``config.json`` has none yet.
    """
    config = load_user_config(path)
    excluded = config.get("excluded_apps")
    if not isinstance(excluded, list):
        excluded = list(current)
    added = [name for name in dict.fromkeys(app_names) if name not in excluded]
    if added:
        config["excluded_apps"] = excluded + added
        save_user_config(path, config)
    return added


def generate_project_id(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return f"{slug}-{uuid.uuid4().hex[:4]}"


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def _as_int(raw: Any, key: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Setting '{key}' must be an integer (got {raw!r})") from exc


def _as_bool(raw: Any, default: bool | None = None) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        if default is None:
            return False
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}
