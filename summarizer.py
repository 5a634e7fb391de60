from __future__ import annotations

import argparse
import sqlite3
import sys
from datetime import datetime

from worklog.aggregation import daily_summary, get_week_start, previous_weeks_reports, week_change, weekly_report
from worklog.classifier import ClassifierGateway, create_backend
from worklog.config import ConfigError, get_settings
from worklog.logging_utils import init_logger
from worklog.reports import format_daily_summary_text, format_week_change_text, format_weekly_report_text
from worklog.storage import EntryRepository


def main() -> None:
    parser = argparse.ArgumentParser(description="Summarize tracked time for a day or a week")
    parser.add_argument("--date", help="Target date YYYY-MM-DD (defaults to today)")
    parser.add_argument("--week", action="store_true", help="Print the weekly timesheet for the week containing --date")
    parser.add_argument("--compare", action="store_true", help="With --week: show change against the previous week")
    parser.add_argument("--ai", action="store_true", help="With --week: append an AI-written summary")
    args = parser.parse_args()

    try:
        settings = get_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    logger = init_logger("summarizer", settings.logging.directory, settings.logging.level, console=False)
    tz = settings.timezone

    try:
        target = datetime.strptime(args.date, "%Y-%m-%d").date() if args.date else datetime.now(tz).date()
    except ValueError:
        parser.error(f"Invalid --date {args.date!r}; expected YYYY-MM-DD")

    try:
        repository = EntryRepository(settings.storage.database_path, logger)

        if not args.week:
            summary = daily_summary(repository, target, tz, settings.projects)
            if summary.entry_count == 0:
                logger.warning("No entries for %s", target.isoformat())
            print(format_daily_summary_text(summary))
            return

        week_start = get_week_start(target, tz)
        report = weekly_report(repository, week_start, tz, settings.projects)
        print(format_weekly_report_text(report))

        if args.compare:
            previous = previous_weeks_reports(repository, 1, tz, settings.projects, today=week_start)[0]
            names = {p.project_id: p.project_name for p in report.project_totals + previous.project_totals}
            print()
            print(format_week_change_text(week_change(report, previous), names))

        if args.ai:
            gateway = ClassifierGateway(create_backend(settings.llm, logger), logger)
            print()
            print("AI Summary:")
            print("-" * 40)
            print(gateway.summarize_week(report))
        logger.info("Weekly report generated for %s", week_start.date().isoformat())
    except (ConfigError, sqlite3.Error) as exc:
        logger.exception("Summarizer failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
