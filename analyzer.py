from __future__ import annotations

import argparse
import json
import sqlite3
import sys

from worklog.classifier import ClassificationRequest, ClassifierGateway, create_backend
from worklog.config import ConfigError, get_settings
from worklog.logging_utils import init_logger
from worklog.models import WindowInfo
from worklog.storage import EntryRepository
from worklog.window import categorize_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Classify stored entries that have no analysis yet")
    parser.add_argument("--limit", type=int, default=25, help="Maximum entries to classify per batch (default: 25)")
    parser.add_argument(
        "--until-empty",
        action="store_true",
        help="Keep classifying in batches until no unclassified entries remain",
    )
    parser.add_argument("--delay", type=float, default=0.5, help="Seconds to wait between groups of 3 calls")
    args = parser.parse_args()

    try:
        settings = get_settings()
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        sys.exit(1)

    logger = init_logger("analyzer", settings.logging.directory, settings.logging.level)

    try:
        repository = EntryRepository(settings.storage.database_path, logger)
        gateway = ClassifierGateway(create_backend(settings.llm, logger), logger)
        logger.info("Classifier backend: %s (%s)", settings.llm.provider, settings.llm.text_model)

        batch_size = max(1, int(args.limit))
        total_processed = 0
        while True:
            pending = repository.unclassified_entries(limit=batch_size)
            if not pending:
                if total_processed == 0:
                    logger.info("No unclassified entries")
                else:
                    logger.info("No unclassified entries remain (processed=%s)", total_processed)
                return

            logger.info("Classifying %s entries", len(pending))
            requests = [
                ClassificationRequest(
                    entry_id=entry.id,
                    window=WindowInfo(app_name=entry.app_name, title=entry.window_title),
                    app_category=categorize_app(entry.app_name),
                    screenshot_path=entry.screenshot_path
                    if entry.screenshot_path and entry.screenshot_path.exists()
                    else None,
                )
                for entry in pending
                if entry.id is not None
            ]
            results = gateway.classify_batch(requests, settings.projects, batch_delay=args.delay)

            for index, request in enumerate(requests, start=1):
                analysis = results.get(request.entry_id)
                if analysis is None:
                    continue
                repository.patch_classification(
                    request.entry_id,
                    analysis.task_description,
                    analysis.suggested_project_id,
                    json.dumps(analysis.to_dict(), ensure_ascii=False),
                )
                total_processed += 1
                logger.info(
                    "Entry %s/%s classified (id=%s) -> %s [%s]",
                    index,
                    len(requests),
                    request.entry_id,
                    analysis.task_description,
                    analysis.category.value,
                )

            if not args.until_empty:
                return
    except (ConfigError, sqlite3.Error) as exc:
        logger.exception("Analyzer failed: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
