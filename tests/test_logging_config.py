# tests/test_logging_config.py

"""Tests for the per-run logging configuration."""

import logging
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from price_watch.config.logging_config import setup_logging
from price_watch.config.settings import Settings


class TestLoggingConfig(unittest.TestCase):
    """Verify logging setup behaviour."""

    def setUp(self) -> None:
        """Point LOGS_DIR at a temp dir and reset the project logger."""
        self._tmpdir = tempfile.TemporaryDirectory()
        self._logs_patch = patch.object(
            Settings, "LOGS_DIR", Path(self._tmpdir.name) / "logs",
        )
        self._logs_patch.start()
        self._reset_handlers()

    def tearDown(self) -> None:
        """Close handlers so the temp dir can be removed."""
        self._reset_handlers()
        self._logs_patch.stop()
        self._tmpdir.cleanup()

    @staticmethod
    def _reset_handlers() -> None:
        root_logger = logging.getLogger("price_watch")
        for handler in list(root_logger.handlers):
            handler.close()
            root_logger.removeHandler(handler)

    def _console_handlers(self) -> list[logging.Handler]:
        return [
            h
            for h in logging.getLogger("price_watch").handlers
            if isinstance(h, logging.StreamHandler)
            and not isinstance(h, logging.FileHandler)
        ]

    def test_setup_creates_log_file(self) -> None:
        """setup_logging returns a path that exists on disk."""
        log_path = setup_logging()
        self.assertTrue(log_path.exists())
        self.assertEqual(log_path.parent.name, "logs")

    def test_log_file_naming_convention(self) -> None:
        """Log file name matches run_YYYYMMDD_HHMMSS.log format."""
        log_path = setup_logging()
        self.assertRegex(log_path.name, r"^run_\d{8}_\d{6}\.log$")

    def test_file_handler_level_debug(self) -> None:
        """File handler should be set to DEBUG level."""
        setup_logging()
        file_handlers = [
            h
            for h in logging.getLogger("price_watch").handlers
            if isinstance(h, logging.FileHandler)
        ]
        self.assertEqual(len(file_handlers), 1)
        self.assertEqual(file_handlers[0].level, logging.DEBUG)

    def test_console_handler_level_warning(self) -> None:
        """Console handler defaults to WARNING."""
        setup_logging()
        handlers = self._console_handlers()
        self.assertEqual(len(handlers), 1)
        self.assertEqual(handlers[0].level, logging.WARNING)

    def test_verbose_console_shows_info(self) -> None:
        """verbose=True lowers the console threshold to INFO."""
        setup_logging(verbose=True)
        self.assertEqual(self._console_handlers()[0].level, logging.INFO)

    def test_repeated_calls_no_duplicate_handlers(self) -> None:
        """Calling setup_logging twice does not duplicate handlers."""
        setup_logging()
        root_logger = logging.getLogger("price_watch")
        count_before = len(root_logger.handlers)
        setup_logging()
        self.assertEqual(len(root_logger.handlers), count_before)

    def test_repeated_call_returns_open_file(self) -> None:
        """A second call reports the file the first call created."""
        first = setup_logging()
        with patch("price_watch.config.logging_config.datetime") as mock_dt:
            mock_dt.now.return_value = datetime(2030, 1, 1, 0, 0, 0)
            second = setup_logging()
        self.assertEqual(second, first)
        self.assertTrue(second.exists())

    def test_child_loggers_reach_file(self) -> None:
        """Module loggers propagate into the run file."""
        log_path = setup_logging()
        logging.getLogger("price_watch.engine").debug("cycle marker 42")
        for handler in logging.getLogger("price_watch").handlers:
            handler.flush()
        self.assertIn("cycle marker 42", log_path.read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
