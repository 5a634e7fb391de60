from __future__ import annotations

import argparse
import sqlite3
import sys
from datetime import datetime, timedelta

from worklog.aggregation import start_of_day
from worklog.capture import cleanup_old_screenshots, format_bytes, screenshots_size
from worklog.config import (
    LLM_PROVIDERS,
    AppSettings,
    ConfigError,
    add_project,
    exclude_apps,
    generate_project_id,
    get_settings,
    load_user_config,
    remove_project,
    save_user_config,
    update_user_config,
    validate_overrides,
)
from worklog.logging_utils import init_logger
from worklog.models import UNASSIGNED_PROJECT, Project
from worklog.storage import EntryRepository
from worklog.tracker_state import mark_stopped, running_process, stop_process
from worklog.window import common_excluded_apps


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the worklog tracker, projects and configuration")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show tracker status")
    sub.add_parser("stop", help="Stop a running observer")

    projects = sub.add_parser("projects", help="Manage projects")
    projects_sub = projects.add_subparsers(dest="action", required=True)
    projects_sub.add_parser("list", help="List configured projects")
    add = projects_sub.add_parser("add", help="Add a project")
    add.add_argument("--name", required=True)
    add.add_argument("--client")
    add.add_argument("--keywords", default="", help="Comma-separated keywords")
    add.add_argument("--rate", type=float, help="Hourly rate")
    add.add_argument("--color", default="#3B82F6")
    remove = projects_sub.add_parser("remove", help="Remove a project")
    remove.add_argument("project_id")

    config = sub.add_parser("config", help="View or update configuration")
    config_sub = config.add_subparsers(dest="action", required=True)
    config_sub.add_parser("show", help="Show effective configuration")
    set_cmd = config_sub.add_parser("set", help="Update capture settings")
    set_cmd.add_argument("--interval", type=int, help="Capture interval in minutes (1-60)")
    set_cmd.add_argument("--idle", type=int, help="Idle threshold in seconds (30-3600)")
    set_cmd.add_argument("--blur", action=argparse.BooleanOptionalAction, default=None, help="Blur screenshots")
    set_cmd.add_argument("--blur-intensity", type=int, help="Blur intensity (0-100)")
    exclude = config_sub.add_parser("exclude", help="Stop tracking an application")
    exclude.add_argument("app_name", nargs="?")
    exclude.add_argument(
        "--common", action="store_true", help="Also exclude common private apps (password managers, system settings, ...)"
    )
    include = config_sub.add_parser("include", help="Resume tracking an application")
    include.add_argument("app_name")
    llm = config_sub.add_parser("llm", help="Update classifier settings")
    llm.add_argument("--provider", choices=LLM_PROVIDERS)
    llm.add_argument("--url", help="Proxy base URL")
    llm.add_argument("--vision", help="Vision model name")
    llm.add_argument("--text", help="Text model name")

    assign = sub.add_parser("assign", help="Override the project of one entry")
    assign.add_argument("entry_id", type=int)
    assign.add_argument("project_id", help=f'Project id, or "{UNASSIGNED_PROJECT}" to clear the override')

    cleanup = sub.add_parser("cleanup", help="Delete entries and screenshots past the retention horizon")
    cleanup.add_argument("--days", type=int, help="Retention in days (default: RETENTION_DAYS)")
    return parser


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    if args.command == "config" and args.action == "exclude" and not (args.app_name or args.common):
        parser.error("config exclude needs an app name or --common")

    try:
        settings = get_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    logger = init_logger("manage", settings.logging.directory, settings.logging.level)

    try:
        if args.command == "status":
            _status(settings)
        elif args.command == "stop":
            _stop(settings, logger)
        elif args.command == "projects":
            _projects(settings, args, logger)
        elif args.command == "config":
            _config(settings, args, logger)
        elif args.command == "assign":
            _assign(settings, args, logger)
        elif args.command == "cleanup":
            _cleanup(settings, args, logger)
    except (ConfigError, sqlite3.Error) as exc:
        logger.exception("%s failed: %s", args.command, exc)
        sys.exit(1)


def _status(settings: AppSettings) -> None:
    repository = EntryRepository(settings.storage.database_path)
    process = running_process(settings.storage.state_path)
    today = start_of_day(datetime.now(settings.timezone), settings.timezone)
    last = repository.last_entry()

    print("Worklog Status")
    print("=" * 40)
    print(f"Running: {'Yes (pid %s)' % process.pid if process else 'No'}")
    print(f"Capture Interval: {settings.capture.interval_minutes} minutes")
    print(f"Entries Today: {repository.count_since(today)}")
    print(f"Projects: {len(settings.projects)}")
    print(f"Screenshots: {format_bytes(screenshots_size(settings.capture.screenshot_dir))}")
    if last is not None:
        print(f"Last Capture: {last.timestamp.astimezone(settings.timezone):%Y-%m-%d %H:%M:%S}")
        print(f"Last App: {last.app_name}")


def _stop(settings: AppSettings, logger) -> None:
    process = running_process(settings.storage.state_path)
    if process is None:
        logger.info("Tracker is not running")
        return
    killed = stop_process(process)
    mark_stopped(settings.storage.state_path)
    logger.info("Tracker stopped (pid=%s, %s)", process.pid, "killed" if killed else "terminated")


def _projects(settings: AppSettings, args, logger) -> None:
    path = settings.storage.user_config_path
    if args.action == "list":
        if not settings.projects:
            print('No projects configured. Use "projects add" to add one.')
            return
        print("Configured Projects:")
        print("-" * 50)
        for project in settings.projects:
            print(f"  {project.id}")
            print(f"    Name: {project.name}")
            if project.client:
                print(f"    Client: {project.client}")
            print(f"    Keywords: {', '.join(project.keywords)}")
            if project.hourly_rate:
                print(f"    Rate: ${project.hourly_rate:g}/hr")
            print()
    elif args.action == "add":
        project = Project(
            id=generate_project_id(args.name),
            name=args.name,
            keywords=[k.strip() for k in args.keywords.split(",") if k.strip()],
            color=args.color,
            hourly_rate=args.rate,
            client=args.client,
        )
        try:
            add_project(path, project)
        except ValueError as exc:
            logger.error("%s", exc)
            sys.exit(1)
        logger.info("Added project: %s (%s)", project.name, project.id)
    elif args.action == "remove":
        if remove_project(path, args.project_id):
            logger.info("Removed project: %s", args.project_id)
        else:
            logger.warning("No project with id %s", args.project_id)


def _config(settings: AppSettings, args, logger) -> None:
    path = settings.storage.user_config_path
    capture, llm = settings.capture, settings.llm

    if args.action == "show":
        print("Current Configuration:")
        print("-" * 40)
        print(f"Capture Interval: {capture.interval_minutes} minutes")
        print(f"Idle Threshold: {capture.idle_threshold_seconds} seconds")
        print(f"Screenshot Directory: {capture.screenshot_dir}")
        print(f"Database Path: {settings.storage.database_path}")
        print(f"Blur Screenshots: {capture.blur_screenshots}")
        print(f"Blur Intensity: {capture.blur_intensity}")
        print(f"Excluded Apps: {', '.join(capture.excluded_apps) or 'none'}")
        print(f"Retention: {capture.retention_days} days")
        print()
        print("LLM Settings:")
        print("-" * 40)
        print(f"Provider: {llm.provider}")
        print(f"Proxy URL: {llm.proxy_url or 'not set'}")
        print(f"Vision Model: {llm.vision_model}")
        print(f"Text Model: {llm.text_model}")
        return

    if args.action == "set":
        updates = {
            key: value
            for key, value in (
                ("capture_interval_minutes", args.interval),
                ("idle_threshold_seconds", args.idle),
                ("blur_screenshots", args.blur),
                ("blur_intensity", args.blur_intensity),
            )
            if value is not None
        }
        _apply_updates(path, updates, logger)
        return

    if args.action == "exclude":
        names = ([args.app_name] if args.app_name else []) + (common_excluded_apps() if args.common else [])
        added = exclude_apps(path, names, capture.excluded_apps)
        if added:
            logger.info("Added %s to excluded apps", ", ".join(added))
        else:
            logger.warning("%s already excluded", ", ".join(names))
        return

    if args.action == "include":
        config = load_user_config(path)
        excluded = config.get("excluded_apps")
        if not isinstance(excluded, list):
            excluded = list(capture.excluded_apps)
        if args.app_name not in excluded:
            logger.warning("%s was not excluded", args.app_name)
            return
        excluded.remove(args.app_name)
        logger.info("Removed %s from excluded apps", args.app_name)
        config["excluded_apps"] = excluded
        save_user_config(path, config)
        return

    if args.action == "llm":
        updates = {
            key: value
            for key, value in (
                ("llm_provider", args.provider),
                ("llm_proxy_url", args.url),
                ("llm_vision_model", args.vision),
                ("llm_text_model", args.text),
            )
            if value is not None
        }
        _apply_updates(path, updates, logger)


def _apply_updates(path, updates: dict, logger) -> None:
    if not updates:
        logger.warning("Nothing to update")
        return
    errors = validate_overrides(updates)
    if errors:
        for error in errors:
            logger.error("  - %s", error)
        sys.exit(1)
    update_user_config(path, **updates)
    logger.info("Configuration updated: %s", ", ".join(sorted(updates)))


def _assign(settings: AppSettings, args, logger) -> None:
    known = {project.id for project in settings.projects}
    if args.project_id != UNASSIGNED_PROJECT and args.project_id not in known:
        logger.error("Unknown project id %s", args.project_id)
        sys.exit(1)
    repository = EntryRepository(settings.storage.database_path, logger)
    project_id = None if args.project_id == UNASSIGNED_PROJECT else args.project_id
    if not repository.set_manual_project(args.entry_id, project_id):
        logger.error("No entry with id %s", args.entry_id)
        sys.exit(1)
    logger.info("Entry %s assigned to %s", args.entry_id, args.project_id)


def _cleanup(settings: AppSettings, args, logger) -> None:
    days = args.days if args.days is not None else settings.capture.retention_days
    cutoff = datetime.now(settings.timezone) - timedelta(days=days)
    repository = EntryRepository(settings.storage.database_path, logger)
    deleted_entries = repository.delete_older_than(cutoff)
    deleted_files = cleanup_old_screenshots(settings.capture.screenshot_dir, days, logger)
    logger.info("Cleanup: %s entries and %s screenshots older than %s days removed", deleted_entries, deleted_files, days)


if __name__ == "__main__":
    main()
