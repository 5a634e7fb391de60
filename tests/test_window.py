from __future__ import annotations

import unittest

from worklog.models import WindowInfo
from worklog.window import (
    categorize_app,
    common_excluded_apps,
    extract_window_context,
    sanitize_window_title,
    should_exclude_window,
)


class WindowHelperTests(unittest.TestCase):
    def test_exclusion_is_case_insensitive_substring(self) -> None:
        window = WindowInfo(app_name="1Password 8", title="Vault")
        self.assertTrue(should_exclude_window(window, ["1password"]))
        self.assertTrue(should_exclude_window(window, ["PASSWORD"]))
        self.assertFalse(should_exclude_window(window, ["Keychain", ""]))

    def test_categorize_app(self) -> None:
        self.assertEqual(categorize_app("Google Chrome"), "browser")
        self.assertEqual(categorize_app("Visual Studio Code"), "editor")
        self.assertEqual(categorize_app("iTerm2"), "terminal")
        self.assertEqual(categorize_app("Slack"), "communication")
        self.assertEqual(categorize_app("Figma"), "design")
        self.assertEqual(categorize_app("Calculator"), "other")

    def test_sanitize_redacts_sensitive_values(self) -> None:
        title = "Mail to jane@example.com - call 555-123-4567"
        sanitized = sanitize_window_title(title)
        self.assertNotIn("jane@example.com", sanitized)
        self.assertNotIn("555-123-4567", sanitized)
        self.assertEqual(sanitized.count("[REDACTED]"), 2)

    def test_extract_window_context(self) -> None:
        context = extract_window_context(WindowInfo(app_name="Code", title="main.py - worklog"))
        self.assertEqual(context["file_name"], "main.py")
        self.assertTrue(context["is_file_open"])
        self.assertEqual(context["app"], "Code")

        empty = extract_window_context(WindowInfo(app_name="Finder", title=""))
        self.assertFalse(empty["is_file_open"])

    def test_common_excluded_apps(self) -> None:
        self.assertIn("1Password", common_excluded_apps())


if __name__ == "__main__":
    unittest.main()
