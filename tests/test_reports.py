from __future__ import annotations

import csv
import io
import json
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from worklog.models import (
    CategoryTime,
    DailySummary,
    Project,
    ProjectTime,
    TimeEntry,
    WeeklyReport,
    WorkCategory,
)
from worklog.reports import (
    ENTRY_CSV_HEADERS,
    entries_to_csv,
    entries_to_json,
    export_filename,
    format_duration,
    format_hours,
    format_weekly_report_text,
    harvest_csv,
    report_to_json,
    toggl_csv,
)

UTC = timezone.utc
BASE = datetime(2026, 1, 5, 9, 0, 0, tzinfo=UTC)
PROJECTS = [Project(id="alpha", name="Alpha", client="ACME")]


def _entry(entry_id: int, minutes: int, **kwargs) -> TimeEntry:
    values = dict(
        id=entry_id,
        timestamp=BASE + timedelta(minutes=minutes),
        app_name="Code",
        window_title="main.py",
        duration_seconds=600,
    )
    values.update(kwargs)
    return TimeEntry(**values)


class FormatTests(unittest.TestCase):
    def test_format_hours(self) -> None:
        self.assertEqual(format_hours(0), "0m")
        self.assertEqual(format_hours(1800), "30m")
        self.assertEqual(format_hours(3600), "1h")
        self.assertEqual(format_hours(5400), "1h 30m")

    def test_format_duration(self) -> None:
        self.assertEqual(format_duration(3661), "01:01:01")
        self.assertEqual(format_duration(0), "00:00:00")

    def test_export_filename(self) -> None:
        name = export_filename(BASE, BASE + timedelta(days=6), "csv", "harvest")
        self.assertEqual(name, "timesheet-harvest-2026-01-05-to-2026-01-11.csv")


class EntryExportTests(unittest.TestCase):
    def test_csv_quotes_commas_and_quotes_and_parses_back(self) -> None:
        title = 'Report "Q1", final'
        content = entries_to_csv([_entry(1, 0, window_title=title)], PROJECTS, tz=UTC)

        self.assertIn('"Report ""Q1"", final"', content)
        rows = list(csv.reader(io.StringIO(content)))
        self.assertEqual(rows[0], ENTRY_CSV_HEADERS)
        self.assertEqual(rows[1][5], title)

    def test_csv_columns(self) -> None:
        entry = _entry(7, 0, manual_project_id="alpha", is_idle=True, screenshot_path=Path("shots/a.jpg"))
        rows = list(csv.reader(io.StringIO(entries_to_csv([entry], PROJECTS, include_screenshots=True, tz=UTC))))

        self.assertEqual(rows[0][-1], "Screenshot Path")
        row = rows[1]
        self.assertEqual(row[0], "7")
        self.assertEqual(row[2:4], ["2026-01-05", "09:00:00"])
        self.assertEqual(row[7:10], ["alpha", "Alpha", "ACME"])
        self.assertEqual(row[10:13], ["600", "10m", "Yes"])
        self.assertEqual(Path(row[13]), Path("shots/a.jpg"))

    def test_json_includes_project_and_formatted_duration(self) -> None:
        entries = [
            _entry(1, 0, project_id="alpha", category=WorkCategory.CODING),
            _entry(2, 10, duration_seconds=None),
        ]
        payload = json.loads(entries_to_json(entries, PROJECTS))

        self.assertEqual(payload[0]["project"], {"id": "alpha", "name": "Alpha", "client": "ACME"})
        self.assertEqual(payload[0]["duration_formatted"], "10m")
        self.assertEqual(payload[0]["category"], "coding")
        self.assertIsNone(payload[1]["project"])
        self.assertIsNone(payload[1]["duration_formatted"])
        self.assertEqual(payload[1]["effective_project_id"], "unassigned")


class TimesheetExportTests(unittest.TestCase):
    def test_harvest_groups_by_day_and_project(self) -> None:
        entries = [
            _entry(1, 0, project_id="alpha", task_description="Writing code"),
            _entry(2, 10, project_id="alpha", task_description="Writing code"),
            _entry(3, 20, project_id="alpha", task_description="Code review"),
            _entry(4, 30, is_idle=True, project_id="alpha"),
            _entry(5, 40, duration_seconds=1800),
        ]
        rows = list(csv.reader(io.StringIO(harvest_csv(entries, PROJECTS, UTC))))

        self.assertEqual(rows[0], ["Date", "Client", "Project", "Task", "Notes", "Hours"])
        self.assertEqual(rows[1], ["2026-01-05", "ACME", "Alpha", "Writing code; Code review", "", "0.50"])
        self.assertEqual(rows[2], ["2026-01-05", "", "unassigned", "", "", "0.50"])

    def test_toggl_skips_open_and_idle_entries(self) -> None:
        entries = [
            _entry(1, 0, project_id="alpha", task_description="Writing code", duration_seconds=3661),
            _entry(2, 70, is_idle=True),
            _entry(3, 80, duration_seconds=None),
        ]
        rows = list(csv.reader(io.StringIO(toggl_csv(entries, PROJECTS, UTC))))

        self.assertEqual(len(rows), 2)
        self.assertEqual(
            rows[1],
            ["", "Alpha", "ACME", "Writing code", "2026-01-05", "09:00:00", "2026-01-05", "10:01:01", "01:01:01"],
        )


class WeeklyReportExportTests(unittest.TestCase):
    def _report(self) -> WeeklyReport:
        day = DailySummary(
            date=BASE.replace(hour=0),
            total_tracked_seconds=4500,
            idle_seconds=900,
            active_seconds=3600,
            project_breakdown=[ProjectTime("alpha", "Alpha", 3600, 4)],
            category_breakdown=[CategoryTime(WorkCategory.CODING, 3600, 4)],
            top_apps=[],
        )
        return WeeklyReport(
            week_start=BASE.replace(hour=0),
            week_end=datetime(2026, 1, 11, 23, 59, 59, 999000, tzinfo=UTC),
            total_hours=1.0,
            daily_summaries=[day],
            project_totals=[ProjectTime("alpha", "Alpha", 3600, 4)],
            category_totals=[CategoryTime(WorkCategory.CODING, 3600, 4)],
        )

    def test_text_layout(self) -> None:
        text = format_weekly_report_text(self._report())
        self.assertIn("WEEKLY TIMESHEET REPORT", text)
        self.assertIn("Week: Jan 5, 2026 - Jan 11, 2026", text)
        self.assertIn("Total Hours: 1.00", text)
        self.assertIn("(100.0%)", text)
        self.assertIn("Mon Jan 5, 2026: 1.00h", text)

    def test_json_report(self) -> None:
        payload = json.loads(report_to_json(self._report()))
        self.assertEqual(payload["total_hours"], 1.0)
        self.assertEqual(payload["projects"][0]["percentage"], 100.0)
        self.assertEqual(payload["daily_breakdown"][0], {
            "date": "2026-01-05",
            "total_hours": 1.0,
            "idle_hours": 0.25,
            "entries": 4,
        })

    def test_percentages_with_empty_week(self) -> None:
        report = self._report()
        report.total_hours = 0.0
        payload = json.loads(report_to_json(report))
        self.assertEqual(payload["projects"][0]["percentage"], 0.0)


if __name__ == "__main__":
    unittest.main()
