# tests/test_settings.py

"""Tests for the Settings configuration class."""

import json
import unittest
from pathlib import Path

from price_watch.config.settings import Settings
from price_watch.services.price_check_engine import load_fetcher_class


class TestSettings(unittest.TestCase):
    """Verify Settings constants and fetcher registry."""

    def test_request_timeout_is_positive_int(self) -> None:
        """REQUEST_TIMEOUT must be a positive integer."""
        self.assertIsInstance(Settings.REQUEST_TIMEOUT, int)
        self.assertGreater(Settings.REQUEST_TIMEOUT, 0)

    def test_max_retries_is_positive(self) -> None:
        """MAX_RETRIES must be >= 1."""
        self.assertGreaterEqual(Settings.MAX_RETRIES, 1)

    def test_circuit_breaker_threshold_positive(self) -> None:
        """CIRCUIT_BREAKER_THRESHOLD must be >= 1."""
        self.assertGreaterEqual(Settings.CIRCUIT_BREAKER_THRESHOLD, 1)

    def test_cycle_defaults(self) -> None:
        """Pacing and cooldown match the documented defaults."""
        self.assertEqual(Settings.CHECK_ITEM_DELAY, 2.0)
        self.assertEqual(Settings.NOTIFY_COOLDOWN_HOURS, 24)

    def test_each_fetcher_has_required_keys(self) -> None:
        """Every fetcher must have id, label, and fetcher keys."""
        for entry in Settings.AVAILABLE_FETCHERS:
            with self.subTest(entry=entry.get("id", "?")):
                self.assertIn("id", entry)
                self.assertIn("label", entry)
                self.assertIn("fetcher", entry)

    def test_default_fetcher_is_registered(self) -> None:
        """DEFAULT_FETCHER names a registered fetcher."""
        ids = [e["id"] for e in Settings.AVAILABLE_FETCHERS]
        self.assertIn(Settings.DEFAULT_FETCHER, ids)
        self.assertEqual(len(ids), len(set(ids)))

    def test_fetcher_paths_importable(self) -> None:
        """Every registered dotted path resolves to a class."""
        for entry in Settings.AVAILABLE_FETCHERS:
            with self.subTest(entry=entry["id"]):
                self.assertIsInstance(
                    load_fetcher_class(entry["fetcher"]), type,
                )

    def test_selectors_file_has_every_fetcher(self) -> None:
        """selectors.json carries a block for each fetcher id."""
        self.assertTrue(Settings.SELECTORS_PATH.exists())
        with open(Settings.SELECTORS_PATH) as f:
            selectors = json.load(f)
        for entry in Settings.AVAILABLE_FETCHERS:
            with self.subTest(entry=entry["id"]):
                self.assertIn(entry["id"], selectors)
                self.assertIn("title", selectors[entry["id"]])

    def test_paths_are_paths(self) -> None:
        """Path settings are Path objects."""
        for value in (Settings.BASE_DIR, Settings.PRICE_DB_PATH, Settings.LOGS_DIR):
            self.assertIsInstance(value, Path)
        self.assertEqual(Settings.PRICE_DB_PATH.name, "price_watch.db")

    def test_default_sender(self) -> None:
        """A sender address is always configured."""
        self.assertIn("@", Settings.ALERT_FROM_EMAIL)


if __name__ == "__main__":
    unittest.main()
