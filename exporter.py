from __future__ import annotations

import argparse
import sqlite3
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

from worklog.aggregation import get_week_start, start_of_day, weekly_report
from worklog.config import ConfigError, get_settings
from worklog.logging_utils import init_logger
from worklog.reports import (
    EXPORT_FORMATS,
    EXPORT_TYPES,
    entries_to_csv,
    entries_to_json,
    export_filename,
    harvest_csv,
    report_to_csv,
    report_to_json,
    save_export,
    toggl_csv,
)
from worklog.storage import EntryRepository


def _parse_day(raw: str) -> date:
    try:
        return datetime.strptime(raw, "%Y-%m-%d").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {raw!r}; expected YYYY-MM-DD") from exc


def main() -> None:
    parser = argparse.ArgumentParser(description="Export tracked time to CSV or JSON")
    parser.add_argument("--format", choices=EXPORT_FORMATS, default="csv")
    parser.add_argument("--type", dest="export_type", choices=EXPORT_TYPES, default="entries")
    parser.add_argument("--from", dest="start", type=_parse_day, help="First day YYYY-MM-DD (default: this Monday)")
    parser.add_argument("--to", dest="end", type=_parse_day, help="Last day YYYY-MM-DD, inclusive (default: today)")
    parser.add_argument("--project", help="Only entries whose effective project id matches")
    parser.add_argument("--screenshots", action="store_true", help="Include screenshot paths in entry CSV")
    parser.add_argument("--output", type=Path, help="Output file (default: REPORT_EXPORT_DIR/timesheet-...)")
    args = parser.parse_args()

    try:
        settings = get_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    logger = init_logger("exporter", settings.logging.directory, settings.logging.level)
    tz = settings.timezone

    start = start_of_day(args.start, tz) if args.start else get_week_start(tz=tz)
    last_day = start_of_day(args.end, tz) if args.end else start_of_day(datetime.now(tz), tz)
    if last_day < start:
        parser.error("--to must not be before --from")
    end = start_of_day(last_day.date() + timedelta(days=1), tz)

    if args.export_type in ("harvest", "toggl") and args.format != "csv":
        logger.info("%s export is CSV only; ignoring --format %s", args.export_type, args.format)
    fmt = args.format if args.export_type in ("entries", "report") else "csv"

    try:
        repository = EntryRepository(settings.storage.database_path, logger)
        logger.info("Exporting %s from %s to %s", args.export_type, start.date(), last_day.date())

        if args.export_type == "report":
            report = weekly_report(repository, start, tz, settings.projects)
            content = report_to_json(report) if fmt == "json" else report_to_csv(report)
        else:
            entries = repository.range(start, end, args.project)
            if args.export_type == "harvest":
                content = harvest_csv(entries, settings.projects, tz)
            elif args.export_type == "toggl":
                content = toggl_csv(entries, settings.projects, tz)
            elif fmt == "json":
                content = entries_to_json(entries, settings.projects)
            else:
                content = entries_to_csv(entries, settings.projects, args.screenshots, tz)
            logger.info("Exported %s entries", len(entries))
    except (ConfigError, sqlite3.Error) as exc:
        logger.exception("Exporter failed: %s", exc)
        sys.exit(1)

    output = args.output or settings.output.export_dir / export_filename(start, last_day, fmt, args.export_type)
    save_export(content, output)
    logger.info("Exported to %s", output)


if __name__ == "__main__":
    main()
