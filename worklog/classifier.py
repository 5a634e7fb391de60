from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

from .config import ConfigError, LLMSettings
from .gemini_client import GeminiBackend
from .models import Project, TaskAnalysis, WeeklyReport, WindowInfo, WorkCategory
from .proxy_client import ProxyBackend
from .window import extract_window_context

TASK_PROMPT = """
You are a productivity analyst helping categorize work activities.
Analyze the context about what the user is working on and provide:
  1. A brief task description (1-2 sentences)
  2. The most likely project/client this relates to (if any match the configured projects)
  3. A confidence score (0-1)
  4. The work category

Available projects:
{projects}

Context about current activity:
- Application: {app_name}
- Window Title: {window_title}
- App Category: {app_category}{file_line}

Respond as JSON only, no other text, with keys:
  - task_description: string
  - suggested_project_id: string or null
  - confidence: number
  - category: one of {categories}
  - notes: string or null
"""

VISION_PROMPT = """
You are a productivity analyst. Analyze this screenshot to understand what work is being done.

Context:
- Application: {app_name}
- Window Title: {window_title}{file_line}

Available projects to match against:
{projects}

Based on the screenshot and context, respond as JSON only with keys:
  - task_description: brief description of the work activity
  - suggested_project_id: matching project id or null
  - confidence: 0.0-1.0
  - category: one of {categories}
  - notes: any additional observations
"""

WEEK_SUMMARY_PROMPT = """
Generate a brief, professional weekly timesheet summary based on this data:

Total Hours: {total_hours:.1f}

Project Breakdown:
{projects}

Top Activities:
{activities}

Provide a 2-3 sentence summary suitable for a timesheet submission.
"""

FALLBACK_NOTES = "Fallback analysis - AI unavailable"

_APP_CATEGORY_TO_WORK = {
    "browser": WorkCategory.RESEARCH,
    "editor": WorkCategory.CODING,
    "terminal": WorkCategory.CODING,
    "communication": WorkCategory.COMMUNICATION,
    "design": WorkCategory.DESIGN,
    "other": WorkCategory.OTHER,
}


@dataclass(frozen=True)
class ClassificationRequest:
    entry_id: int
    window: WindowInfo
    app_category: str
    screenshot_path: Optional[Path] = None


def fallback_analysis(window: WindowInfo, app_category: str) -> TaskAnalysis:
    return TaskAnalysis(
        task_description=f"Working in {window.app_name}",
        suggested_project_id=None,
        confidence=0.3,
        category=_APP_CATEGORY_TO_WORK.get(app_category, WorkCategory.OTHER),
        notes=FALLBACK_NOTES,
    )


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first parseable ``{...}`` object embedded in ``text``, if any."""
    decoder = json.JSONDecoder()
    index = text.find("{")
    while index != -1:
        try:
            value, _ = decoder.raw_decode(text, index)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, dict):
            return value
        index = text.find("{", index + 1)
    return None


def parse_analysis(
    text: str,
    window: WindowInfo,
    app_category: str,
    log: logging.Logger | None = None,
) -> TaskAnalysis:
    payload = extract_json_object(text or "")
    if payload is None:
        (log or logging.getLogger(__name__)).warning("No JSON object in classifier output; using fallback")
        return fallback_analysis(window, app_category)

    try:
        confidence = float(payload.get("confidence", 0.5))
    except (TypeError, ValueError):
        confidence = 0.5

    project_id = payload.get("suggested_project_id")
    notes = payload.get("notes")
    return TaskAnalysis(
        task_description=str(payload.get("task_description") or "Unknown activity"),
        suggested_project_id=str(project_id) if project_id else None,
        confidence=confidence,
        category=WorkCategory.normalize(payload.get("category")),
        notes=str(notes) if notes is not None else None,
    )


def format_project_list(projects: Iterable[Project]) -> str:
    lines = [f"- {p.name} (ID: {p.id}): keywords: {', '.join(p.keywords)}" for p in projects]
    return "\n".join(lines) if lines else "No projects configured"


class ClassifierGateway:
    """Turns a backend's raw completions into a TaskAnalysis.

    ``classify`` makes one attempt per prompt shape and never raises; any
    backend or parsing failure yields the fallback analysis for the app.
    """

    def __init__(self, backend, log: logging.Logger | None = None):
        self._backend = backend
        self._logger = log or logging.getLogger(__name__)

    def classify(
        self,
        window: WindowInfo,
        app_category: str,
        projects: Sequence[Project],
        screenshot_path: Optional[Path] = None,
    ) -> TaskAnalysis:
        window_context = extract_window_context(window)
        file_line = f"\n- Open File: {window_context['file_name']}" if window_context["is_file_open"] else ""
        context = {
            "app_name": window.app_name,
            "window_title": window_context["context"],
            "file_line": file_line,
            "app_category": app_category,
            "projects": format_project_list(projects),
            "categories": "|".join(category.value for category in WorkCategory),
        }

        if screenshot_path is not None:
            try:
                text = self._backend.complete(VISION_PROMPT.format(**context), screenshot_path, vision=True)
                return parse_analysis(text, window, app_category, self._logger)
            except Exception as exc:
                self._logger.warning("Vision analysis failed, falling back to text: %s", exc)

        try:
            text = self._backend.complete(TASK_PROMPT.format(**context))
        except Exception as exc:
            self._logger.warning("Classification failed for %s: %s", window.app_name, exc)
            return fallback_analysis(window, app_category)
        return parse_analysis(text, window, app_category, self._logger)

    def classify_batch(
        self,
        requests: Sequence[ClassificationRequest],
        projects: Sequence[Project],
        concurrency: int = 3,
        batch_delay: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Dict[int, TaskAnalysis]:
        """Classify in chunks of ``concurrency`` calls, pausing ``batch_delay`` between chunks."""
        results: Dict[int, TaskAnalysis] = {}
        if not requests:
            return results

        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="classify") as executor:
            for start in range(0, len(requests), concurrency):
                if start > 0 and batch_delay > 0:
                    sleep(batch_delay)
                chunk = requests[start:start + concurrency]
                futures = [
                    (
                        request,
                        executor.submit(
                            self.classify, request.window, request.app_category, projects, request.screenshot_path
                        ),
                    )
                    for request in chunk
                ]
                for request, future in futures:
                    try:
                        results[request.entry_id] = future.result()
                    except Exception as exc:
                        self._logger.exception("Classification of entry %s failed: %s", request.entry_id, exc)
                        results[request.entry_id] = fallback_analysis(request.window, request.app_category)
        return results

    def summarize_week(self, report: WeeklyReport) -> str:
        project_lines = [f"- {p.project_name}: {p.seconds / 3600:.1f} hours" for p in report.project_totals]
        activities = [f"- {c.category.value}: {c.seconds / 3600:.1f}h" for c in report.category_totals[:5]]
        prompt = WEEK_SUMMARY_PROMPT.format(
            total_hours=report.total_hours,
            projects="\n".join(project_lines) or "- none",
            activities="\n".join(activities) or "- none",
        )
        try:
            text = self._backend.complete(prompt).strip()
        except Exception as exc:
            self._logger.warning("Weekly summary generation failed: %s", exc)
            text = ""
        if not text:
            return f"Worked {report.total_hours:.1f} hours across {len(report.project_totals)} projects."
        return text


def create_backend(settings: LLMSettings, log):
    if settings.provider == "gemini":
        return GeminiBackend(settings, log)
    if settings.provider == "proxy":
        return ProxyBackend(settings, log)
    raise ConfigError(f"Unknown LLM provider: {settings.provider}")
