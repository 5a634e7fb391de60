from __future__ import annotations

import csv
import io
import json
from collections import OrderedDict
from datetime import datetime, timedelta, tzinfo
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import DailySummary, Project, TimeEntry, WeekChange, WeeklyReport
from .utils import ensure_directory, local_timezone, to_storage_time

ENTRY_CSV_HEADERS = [
    "ID",
    "Timestamp",
    "Date",
    "Time",
    "Application",
    "Window Title",
    "Task Description",
    "Project ID",
    "Project Name",
    "Client",
    "Duration (seconds)",
    "Duration (formatted)",
    "Is Idle",
]

EXPORT_FORMATS = ("csv", "json")
EXPORT_TYPES = ("entries", "report", "harvest", "toggl")


def format_hours(seconds: int) -> str:
    hours, minutes = int(seconds) // 3600, (int(seconds) % 3600) // 60
    if hours == 0:
        return f"{minutes}m"
    if minutes == 0:
        return f"{hours}h"
    return f"{hours}h {minutes}m"


def format_duration(seconds: int) -> str:
    seconds = int(seconds)
    return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


def format_date(value: datetime) -> str:
    return f"{value:%b} {value.day}, {value.year}"


def _percent(seconds: int, total_hours: float) -> float:
    total_seconds = total_hours * 3600
    return (seconds / total_seconds * 100) if total_seconds > 0 else 0.0


def format_weekly_report_text(report: WeeklyReport) -> str:
    lines = [
        "=" * 60,
        "WEEKLY TIMESHEET REPORT",
        "=" * 60,
        "",
        f"Week: {format_date(report.week_start)} - {format_date(report.week_end)}",
        f"Total Hours: {report.total_hours:.2f}",
        "",
        "-" * 40,
        "PROJECT BREAKDOWN",
        "-" * 40,
    ]
    for project in report.project_totals:
        hours = f"{project.seconds / 3600:.2f}"
        lines.append(
            f"  {project.project_name:<25} {hours:>8}h ({_percent(project.seconds, report.total_hours):.1f}%)"
        )

    lines += ["", "-" * 40, "DAILY BREAKDOWN", "-" * 40]
    for day in report.daily_summaries:
        lines.append(f"  {day.date:%a} {format_date(day.date)}: {day.active_seconds / 3600:.2f}h")

    lines += ["", "-" * 40, "CATEGORY BREAKDOWN", "-" * 40]
    for category in report.category_totals:
        hours = f"{category.seconds / 3600:.2f}"
        lines.append(f"  {category.category.value:<20} {hours:>8}h")

    lines += ["", "=" * 60]
    return "\n".join(lines)


def format_daily_summary_text(summary: DailySummary) -> str:
    lines = [
        f"Daily summary for {summary.date:%a} {format_date(summary.date)}",
        "-" * 40,
        f"Tracked: {format_hours(summary.total_tracked_seconds)}"
        f"  (active {format_hours(summary.active_seconds)}, idle {format_hours(summary.idle_seconds)})",
        f"Entries: {summary.entry_count}",
    ]
    if summary.project_breakdown:
        lines += ["", "Projects:"]
        lines += [f"  {p.project_name:<25} {format_hours(p.seconds):>8}" for p in summary.project_breakdown]
    if summary.category_breakdown:
        lines += ["", "Categories:"]
        lines += [f"  {c.category.value:<25} {format_hours(c.seconds):>8}" for c in summary.category_breakdown]
    if summary.top_apps:
        lines += ["", "Top apps:"]
        lines += [f"  {a.app_name:<25} {format_hours(a.seconds):>8}" for a in summary.top_apps]
    return "\n".join(lines)


def format_week_change_text(change: WeekChange, project_names: Optional[Dict[str, str]] = None) -> str:
    names = project_names or {}
    lines = [
        "WEEK-OVER-WEEK",
        "-" * 40,
        f"Hours: {change.hours_change:+.2f} ({change.hours_change_percent:+.1f}%)",
    ]
    for project_id, delta in sorted(change.project_changes.items(), key=lambda item: item[1], reverse=True):
        lines.append(f"  {names.get(project_id, project_id):<25} {delta:+8.2f}h")
    return "\n".join(lines)


def _project_lookup(projects: Iterable[Project]) -> Dict[str, Project]:
    return {project.id: project for project in projects}


def _write_csv(rows: Iterable[Sequence[Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def entries_to_csv(
    entries: Sequence[TimeEntry],
    projects: Sequence[Project] = (),
    include_screenshots: bool = False,
    tz: tzinfo | None = None,
) -> str:
    tz = tz or local_timezone()
    lookup = _project_lookup(projects)
    headers = ENTRY_CSV_HEADERS + (["Screenshot Path"] if include_screenshots else [])
    rows: List[List[Any]] = [headers]
    for entry in entries:
        project_id = entry.manual_project_id or entry.project_id
        project = lookup.get(project_id) if project_id else None
        local = entry.timestamp.astimezone(tz)
        row = [
            entry.id,
            to_storage_time(entry.timestamp),
            local.strftime("%Y-%m-%d"),
            local.strftime("%H:%M:%S"),
            entry.app_name,
            entry.window_title,
            entry.task_description or "",
            project_id or "",
            project.name if project else "",
            (project.client or "") if project else "",
            "" if entry.duration_seconds is None else entry.duration_seconds,
            format_hours(entry.duration_seconds) if entry.duration_seconds else "",
            "Yes" if entry.is_idle else "No",
        ]
        if include_screenshots:
            row.append(str(entry.screenshot_path) if entry.screenshot_path else "")
        rows.append(row)
    return _write_csv(rows)


def entries_to_json(entries: Sequence[TimeEntry], projects: Sequence[Project] = ()) -> str:
    lookup = _project_lookup(projects)
    payload = []
    for entry in entries:
        project_id = entry.manual_project_id or entry.project_id
        project = lookup.get(project_id) if project_id else None
        payload.append(
            {
                "id": entry.id,
                "timestamp": to_storage_time(entry.timestamp),
                "app_name": entry.app_name,
                "window_title": entry.window_title,
                "screenshot_path": str(entry.screenshot_path) if entry.screenshot_path else None,
                "task_description": entry.task_description,
                "project_id": entry.project_id,
                "manual_project_id": entry.manual_project_id,
                "effective_project_id": entry.effective_project_id,
                "project": {"id": project.id, "name": project.name, "client": project.client} if project else None,
                "category": entry.category.value if entry.category else None,
                "classifier_notes": entry.classifier_notes,
                "duration_seconds": entry.duration_seconds,
                "duration_formatted": format_hours(entry.duration_seconds) if entry.duration_seconds else None,
                "is_idle": entry.is_idle,
            }
        )
    return json.dumps(payload, ensure_ascii=False, indent=2)


def report_to_json(report: WeeklyReport) -> str:
    payload = {
        "week_start": report.week_start.isoformat(),
        "week_end": report.week_end.isoformat(),
        "total_hours": round(report.total_hours, 2),
        "projects": [
            {
                "id": p.project_id,
                "name": p.project_name,
                "hours": round(p.seconds / 3600, 2),
                "entries": p.entries,
                "percentage": round(_percent(p.seconds, report.total_hours), 1),
            }
            for p in report.project_totals
        ],
        "categories": [
            {"category": c.category.value, "hours": round(c.seconds / 3600, 2), "entries": c.entries}
            for c in report.category_totals
        ],
        "daily_breakdown": [
            {
                "date": day.date.strftime("%Y-%m-%d"),
                "total_hours": round(day.active_seconds / 3600, 2),
                "idle_hours": round(day.idle_seconds / 3600, 2),
                "entries": day.entry_count,
            }
            for day in report.daily_summaries
        ],
    }
    return json.dumps(payload, ensure_ascii=False, indent=2)


def report_to_csv(report: WeeklyReport) -> str:
    rows: List[List[Any]] = [
        ["WEEKLY REPORT SUMMARY"],
        ["Week Start", report.week_start.strftime("%Y-%m-%d")],
        ["Week End", report.week_end.strftime("%Y-%m-%d")],
        ["Total Hours", f"{report.total_hours:.2f}"],
        [],
        ["PROJECT BREAKDOWN"],
        ["Project ID", "Project Name", "Hours", "Entries", "Percentage"],
    ]
    for p in report.project_totals:
        rows.append(
            [
                p.project_id,
                p.project_name,
                f"{p.seconds / 3600:.2f}",
                p.entries,
                f"{_percent(p.seconds, report.total_hours):.1f}%",
            ]
        )

    rows += [[], ["DAILY BREAKDOWN"], ["Date", "Day", "Active Hours", "Idle Hours", "Total Entries"]]
    for day in report.daily_summaries:
        rows.append(
            [
                day.date.strftime("%Y-%m-%d"),
                day.date.strftime("%a"),
                f"{day.active_seconds / 3600:.2f}",
                f"{day.idle_seconds / 3600:.2f}",
                day.entry_count,
            ]
        )

    rows += [[], ["CATEGORY BREAKDOWN"], ["Category", "Hours", "Entries"]]
    for c in report.category_totals:
        rows.append([c.category.value, f"{c.seconds / 3600:.2f}", c.entries])
    return _write_csv(rows)


def harvest_csv(entries: Sequence[TimeEntry], projects: Sequence[Project] = (), tz: tzinfo | None = None) -> str:
    """One row per local day and effective project, non-idle entries only."""
    tz = tz or local_timezone()
    lookup = _project_lookup(projects)
    grouped: "OrderedDict[tuple[str, str], List[TimeEntry]]" = OrderedDict()
    for entry in entries:
        if entry.is_idle:
            continue
        key = (entry.timestamp.astimezone(tz).strftime("%Y-%m-%d"), entry.effective_project_id)
        grouped.setdefault(key, []).append(entry)

    rows: List[List[Any]] = [["Date", "Client", "Project", "Task", "Notes", "Hours"]]
    for (day, project_id), group in grouped.items():
        project = lookup.get(project_id)
        seconds = sum(entry.duration_seconds or 0 for entry in group)
        tasks = list(OrderedDict.fromkeys(e.task_description for e in group if e.task_description))
        rows.append(
            [
                day,
                (project.client or "") if project else "",
                project.name if project else project_id,
                "; ".join(tasks[:3]),
                "",
                f"{seconds / 3600:.2f}",
            ]
        )
    return _write_csv(rows)


def toggl_csv(entries: Sequence[TimeEntry], projects: Sequence[Project] = (), tz: tzinfo | None = None) -> str:
    """One row per closed, non-idle entry."""
    tz = tz or local_timezone()
    lookup = _project_lookup(projects)
    rows: List[List[Any]] = [
        ["Email", "Project", "Client", "Description", "Start date", "Start time", "End date", "End time", "Duration"]
    ]
    for entry in entries:
        if entry.is_idle or not entry.duration_seconds:
            continue
        project_id = entry.manual_project_id or entry.project_id
        project = lookup.get(project_id) if project_id else None
        start = entry.timestamp.astimezone(tz)
        end = start + timedelta(seconds=entry.duration_seconds)
        rows.append(
            [
                "",
                project.name if project else "",
                (project.client or "") if project else "",
                entry.task_description or entry.window_title,
                start.strftime("%Y-%m-%d"),
                start.strftime("%H:%M:%S"),
                end.strftime("%Y-%m-%d"),
                end.strftime("%H:%M:%S"),
                format_duration(entry.duration_seconds),
            ]
        )
    return _write_csv(rows)


def export_filename(start: datetime, end: datetime, fmt: str, export_type: str = "entries") -> str:
    return f"timesheet-{export_type}-{start:%Y-%m-%d}-to-{end:%Y-%m-%d}.{fmt}"


def save_export(content: str, path: Path) -> Path:
    ensure_directory(path.parent)
    path.write_text(content, encoding="utf-8", newline="")
    return path
