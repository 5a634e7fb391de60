from __future__ import annotations

import json
import os
import re
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from worklog.config import (
    ConfigError,
    add_project,
    exclude_apps,
    generate_project_id,
    load_settings,
    load_user_config,
    remove_project,
    update_user_config,
    validate_overrides,
)
from worklog.models import Project
from worklog.window import common_excluded_apps


class ValidationTests(unittest.TestCase):
    def test_valid_values_have_no_errors(self) -> None:
        values = {
            "capture_interval_minutes": 5,
            "idle_threshold_seconds": 300,
            "blur_intensity": 20,
            "llm_provider": "gemini",
        }
        self.assertEqual(validate_overrides(values), [])

    def test_out_of_range_values(self) -> None:
        errors = validate_overrides(
            {
                "capture_interval_minutes": 0,
                "idle_threshold_seconds": 5000,
                "blur_intensity": 101,
                "llm_provider": "claude-sdk",
            }
        )
        self.assertEqual(len(errors), 4)
        self.assertIn("Capture interval must be between 1 and 60 minutes", errors)


class LoadSettingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self._tmp.name)
        env = {
            "DATA_DIR": str(self.data_dir),
            "CAPTURE_INTERVAL_MINUTES": "5",
            "IDLE_THRESHOLD_SECONDS": "300",
            "BLUR_INTENSITY": "20",
            "EXCLUDED_APPS": "1Password, Keychain Access",
            "LLM_PROVIDER": "proxy",
            "TIMEZONE": "",
        }
        patcher = mock.patch.dict(os.environ, env)
        patcher.start()
        self.addCleanup(patcher.stop)
        for key in ("DATABASE_PATH", "SCREENSHOT_DIR", "BLUR_SCREENSHOTS"):
            os.environ.pop(key, None)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_environment_defaults(self) -> None:
        settings = load_settings()
        self.assertEqual(settings.capture.interval_seconds, 300)
        self.assertEqual(settings.capture.excluded_apps, ("1Password", "Keychain Access"))
        self.assertFalse(settings.capture.blur_screenshots)
        self.assertEqual(settings.storage.database_path, (self.data_dir / "worklog.db").resolve())
        self.assertEqual(settings.storage.state_path.name, "tracker_state.json")
        self.assertEqual(settings.projects, ())

    def test_user_config_overrides_environment(self) -> None:
        (self.data_dir / "config.json").write_text(
            json.dumps(
                {
                    "capture_interval_minutes": 10,
                    "blur_screenshots": True,
                    "excluded_apps": ["Finder"],
                    "projects": [{"id": "alpha", "name": "Alpha", "keywords": ["alpha"]}],
                }
            ),
            encoding="utf-8",
        )
        settings = load_settings()
        self.assertEqual(settings.capture.interval_minutes, 10)
        self.assertTrue(settings.capture.blur_screenshots)
        self.assertEqual(settings.capture.excluded_apps, ("Finder",))
        self.assertEqual([p.id for p in settings.projects], ["alpha"])

    def test_invalid_override_raises(self) -> None:
        (self.data_dir / "config.json").write_text(json.dumps({"idle_threshold_seconds": 5}), encoding="utf-8")
        with self.assertRaises(ConfigError):
            load_settings()

    def test_non_integer_setting_raises(self) -> None:
        with mock.patch.dict(os.environ, {"CAPTURE_INTERVAL_MINUTES": "often"}):
            with self.assertRaises(ConfigError):
                load_settings()


class UserConfigTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "config.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_missing_and_corrupt_files_read_as_empty(self) -> None:
        self.assertEqual(load_user_config(self.path), {})
        self.path.write_text("{not json", encoding="utf-8")
        self.assertEqual(load_user_config(self.path), {})

    def test_update_merges_values(self) -> None:
        update_user_config(self.path, capture_interval_minutes=15)
        update_user_config(self.path, llm_provider="gemini")
        self.assertEqual(
            load_user_config(self.path), {"capture_interval_minutes": 15, "llm_provider": "gemini"}
        )

    def test_add_and_remove_project(self) -> None:
        project = Project(id="alpha-1234", name="Alpha", keywords=["alpha"], client="ACME")
        add_project(self.path, project)
        with self.assertRaises(ValueError):
            add_project(self.path, project)

        stored = load_user_config(self.path)["projects"]
        self.assertEqual(Project.from_dict(stored[0]), project)
        self.assertTrue(remove_project(self.path, "alpha-1234"))
        self.assertFalse(remove_project(self.path, "alpha-1234"))

    def test_exclude_apps_seeds_from_current_and_skips_duplicates(self) -> None:
        added = exclude_apps(self.path, ["Slack", "1Password"] + common_excluded_apps(), current=["1Password"])
        self.assertEqual(added[0], "Slack")
        self.assertNotIn("1Password", added)
        self.assertEqual(len(added), len(set(added)))

        excluded = load_user_config(self.path)["excluded_apps"]
        self.assertEqual(excluded[:2], ["1Password", "Slack"])
        self.assertIn("Keychain Access", excluded)
        self.assertEqual(exclude_apps(self.path, ["Slack"], current=[]), [])

    def test_generate_project_id(self) -> None:
        self.assertRegex(generate_project_id("My Project!"), re.compile(r"^my-project-[0-9a-f]{4}$"))


if __name__ == "__main__":
    unittest.main()
