from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Union

from .models import (
    AppTime,
    CategoryTime,
    DailySummary,
    Project,
    ProjectTime,
    TimeEntry,
    WeekChange,
    WeeklyReport,
    WorkCategory,
)
from .utils import local_timezone

TOP_APPS_LIMIT = 10

DayLike = Union[date, datetime]


def start_of_day(day: DayLike, tz: tzinfo | None = None) -> datetime:
    """Midnight of ``day`` in ``tz`` (aware datetimes are first converted into ``tz``)."""
    if isinstance(day, datetime):
        tz = tz or day.tzinfo or local_timezone()
        day = day.astimezone(tz).date() if day.tzinfo else day.date()
    tz = tz or local_timezone()
    return datetime.combine(day, time.min, tzinfo=tz)


def get_week_start(day: DayLike | None = None, tz: tzinfo | None = None) -> datetime:
    """Monday 00:00 of the week containing ``day``."""
    midnight = start_of_day(day or datetime.now(tz or local_timezone()), tz)
    return start_of_day(midnight.date() - timedelta(days=midnight.weekday()), midnight.tzinfo)


def get_week_end(week_start: datetime) -> datetime:
    """Sunday 23:59:59.999 of the week starting at ``week_start``."""
    end_day = week_start.date() + timedelta(days=6)
    return datetime.combine(end_day, time(23, 59, 59, 999000), tzinfo=week_start.tzinfo)


class _Bucket:
    __slots__ = ("seconds", "entries")

    def __init__(self) -> None:
        self.seconds = 0
        self.entries = 0

    def add(self, seconds: int, entries: int = 1) -> None:
        self.seconds += seconds
        self.entries += entries


def _project_names(projects: Iterable[Project]) -> Dict[str, str]:
    return {project.id: project.name for project in projects}


def summarize_entries(
    day_start: datetime,
    entries: Iterable[TimeEntry],
    projects: Sequence[Project] = (),
) -> DailySummary:
    """Fold one day's entries into totals and per-project/category/app buckets."""
    names = _project_names(projects)
    total = idle = active = 0
    by_project: Dict[str, _Bucket] = defaultdict(_Bucket)
    by_category: Dict[WorkCategory, _Bucket] = defaultdict(_Bucket)
    by_app: Dict[str, _Bucket] = defaultdict(_Bucket)

    for entry in entries:
        seconds = entry.duration_seconds or 0
        total += seconds
        if entry.is_idle:
            idle += seconds
            continue

        active += seconds
        by_project[entry.effective_project_id].add(seconds)
        by_app[entry.app_name].add(seconds)
        if entry.category is not None:
            by_category[entry.category].add(seconds)

    project_breakdown = sorted(
        (
            ProjectTime(project_id=pid, project_name=names.get(pid, pid), seconds=b.seconds, entries=b.entries)
            for pid, b in by_project.items()
        ),
        key=lambda item: item.seconds,
        reverse=True,
    )
    category_breakdown = sorted(
        (CategoryTime(category=cat, seconds=b.seconds, entries=b.entries) for cat, b in by_category.items()),
        key=lambda item: item.seconds,
        reverse=True,
    )
    top_apps = sorted(
        (AppTime(app_name=app, seconds=b.seconds, entries=b.entries) for app, b in by_app.items()),
        key=lambda item: item.seconds,
        reverse=True,
    )[:TOP_APPS_LIMIT]

    return DailySummary(
        date=day_start,
        total_tracked_seconds=total,
        idle_seconds=idle,
        active_seconds=active,
        project_breakdown=project_breakdown,
        category_breakdown=category_breakdown,
        top_apps=top_apps,
    )


def daily_summary(repository, day: DayLike, tz: tzinfo | None = None, projects: Sequence[Project] = ()) -> DailySummary:
    day_start = start_of_day(day, tz)
    day_end = start_of_day(day_start.date() + timedelta(days=1), day_start.tzinfo)
    return summarize_entries(day_start, repository.range(day_start, day_end), projects)


def weekly_report(
    repository,
    week_start: DayLike | None = None,
    tz: tzinfo | None = None,
    projects: Sequence[Project] = (),
) -> WeeklyReport:
    start = get_week_start(week_start, tz)
    end = get_week_end(start)
    names = _project_names(projects)

    summaries = [
        daily_summary(repository, start.date() + timedelta(days=offset), start.tzinfo, projects)
        for offset in range(7)
    ]

    project_totals: Dict[str, _Bucket] = defaultdict(_Bucket)
    category_totals: Dict[WorkCategory, _Bucket] = defaultdict(_Bucket)
    for summary in summaries:
        for project in summary.project_breakdown:
            project_totals[project.project_id].add(project.seconds, project.entries)
        for category in summary.category_breakdown:
            category_totals[category.category].add(category.seconds, category.entries)

    active_seconds = sum(summary.active_seconds for summary in summaries)
    return WeeklyReport(
        week_start=start,
        week_end=end,
        total_hours=active_seconds / 3600,
        daily_summaries=summaries,
        project_totals=sorted(
            (
                ProjectTime(project_id=pid, project_name=names.get(pid, pid), seconds=b.seconds, entries=b.entries)
                for pid, b in project_totals.items()
            ),
            key=lambda item: item.seconds,
            reverse=True,
        ),
        category_totals=sorted(
            (CategoryTime(category=cat, seconds=b.seconds, entries=b.entries) for cat, b in category_totals.items()),
            key=lambda item: item.seconds,
            reverse=True,
        ),
    )


def previous_weeks_reports(
    repository,
    num_weeks: int = 4,
    tz: tzinfo | None = None,
    projects: Sequence[Project] = (),
    today: Optional[DayLike] = None,
) -> List[WeeklyReport]:
    current = get_week_start(today, tz)
    return [
        weekly_report(repository, current.date() - timedelta(days=7 * weeks_back), current.tzinfo, projects)
        for weeks_back in range(1, num_weeks + 1)
    ]


def week_change(current: WeeklyReport, previous: WeeklyReport) -> WeekChange:
    hours_change = current.total_hours - previous.total_hours
    percent = (hours_change / previous.total_hours * 100) if previous.total_hours > 0 else 0.0

    current_hours = {p.project_id: p.seconds / 3600 for p in current.project_totals}
    previous_hours = {p.project_id: p.seconds / 3600 for p in previous.project_totals}
    project_changes = {
        pid: current_hours.get(pid, 0.0) - previous_hours.get(pid, 0.0)
        for pid in list(current_hours) + [pid for pid in previous_hours if pid not in current_hours]
    }
    return WeekChange(hours_change=hours_change, hours_change_percent=percent, project_changes=project_changes)
