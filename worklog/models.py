from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

UNASSIGNED_PROJECT = "unassigned"


class WorkCategory(str, Enum):
    CODING = "coding"
    COMMUNICATION = "communication"
    RESEARCH = "research"
    DOCUMENTATION = "documentation"
    MEETING = "meeting"
    DESIGN = "design"
    ADMIN = "admin"
    BREAK = "break"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> Optional["WorkCategory"]:
        """Return the matching category, or None for anything outside the closed set."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @classmethod
    def normalize(cls, value: Any) -> "WorkCategory":
        return cls.parse(value) or cls.OTHER


@dataclass(frozen=True)
class WindowInfo:
    app_name: str
    title: str
    bundle_id: Optional[str] = None
    pid: int = 0


@dataclass(frozen=True)
class Project:
    id: str
    name: str
    keywords: List[str] = field(default_factory=list)
    color: str = "#3B82F6"
    hourly_rate: Optional[float] = None
    client: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Project":
        rate = raw.get("hourly_rate")
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or raw["id"]),
            keywords=[str(k) for k in raw.get("keywords") or []],
            color=str(raw.get("color") or "#3B82F6"),
            hourly_rate=float(rate) if rate is not None else None,
            client=raw.get("client") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TimeEntry:
    timestamp: datetime
    app_name: str
    window_title: str
    screenshot_path: Optional[Path] = None
    task_description: Optional[str] = None
    project_id: Optional[str] = None
    manual_project_id: Optional[str] = None
    duration_seconds: Optional[int] = None
    is_idle: bool = False
    ai_analysis: Optional[str] = None
    category: Optional[WorkCategory] = None
    classifier_notes: Optional[str] = None
    id: Optional[int] = None

    @property
    def effective_project_id(self) -> str:
        return self.manual_project_id or self.project_id or UNASSIGNED_PROJECT


@dataclass(frozen=True)
class TaskAnalysis:
    task_description: str
    suggested_project_id: Optional[str]
    confidence: float
    category: WorkCategory
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_description": self.task_description,
            "suggested_project_id": self.suggested_project_id,
            "confidence": self.confidence,
            "category": self.category.value,
            "notes": self.notes,
        }


@dataclass(frozen=True)
class ProjectTime:
    project_id: str
    project_name: str
    seconds: int
    entries: int


@dataclass(frozen=True)
class CategoryTime:
    category: WorkCategory
    seconds: int
    entries: int


@dataclass(frozen=True)
class AppTime:
    app_name: str
    seconds: int
    entries: int


@dataclass
class DailySummary:
    date: datetime
    total_tracked_seconds: int
    idle_seconds: int
    active_seconds: int
    project_breakdown: List[ProjectTime]
    category_breakdown: List[CategoryTime]
    top_apps: List[AppTime]

    @property
    def entry_count(self) -> int:
        return sum(project.entries for project in self.project_breakdown)


@dataclass
class WeeklyReport:
    week_start: datetime
    week_end: datetime
    total_hours: float
    daily_summaries: List[DailySummary]
    project_totals: List[ProjectTime]
    category_totals: List[CategoryTime]


@dataclass(frozen=True)
class WeekChange:
    hours_change: float
    hours_change_percent: float
    project_changes: Dict[str, float]
