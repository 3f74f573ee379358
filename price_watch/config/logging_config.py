# price_watch/config/logging_config.py

"""Per-run logging for price_watch.

Every invocation (a single ``check``, a long ``watch``, an ``add``)
gets its own file under ``logs/`` named after its start time, e.g.
``logs/run_20260301_120000.log``.  All ``price_watch.*`` loggers
propagate into it, so one cycle's fetches, alert decisions and
deliveries read top to bottom in a single file.

The console shows WARNING and above (INFO with ``--verbose``); the
file keeps DEBUG, including tracebacks of isolated per-product errors.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from price_watch.config.settings import Settings

_FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

PROJECT_LOGGER = "price_watch"


def _handler(
    handler: logging.Handler, level: int, fmt: str,
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=_DATE_FORMAT))
    return handler


def setup_logging(verbose: bool = False) -> Path:
    """Attach the run-file and console handlers to ``price_watch``.

    Safe to call more than once; later calls keep the existing
    handlers and return the file the first call opened.

    Args:
        verbose: Lower the console threshold to INFO.

    Returns:
        Path of this run's log file.
    """
    project_logger = logging.getLogger(PROJECT_LOGGER)
    project_logger.setLevel(logging.DEBUG)
    for existing in project_logger.handlers:
        if isinstance(existing, logging.FileHandler):
            return Path(existing.baseFilename)

    Settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
    log_file = Settings.LOGS_DIR / (
        f"run_{datetime.now():%Y%m%d_%H%M%S}.log"
    )

    project_logger.addHandler(
        _handler(
            logging.FileHandler(log_file, encoding="utf-8"),
            logging.DEBUG,
            _FILE_FORMAT,
        )
    )
    project_logger.addHandler(
        _handler(
            logging.StreamHandler(sys.stderr),
            logging.INFO if verbose else logging.WARNING,
            _CONSOLE_FORMAT,
        )
    )
    project_logger.info("Run log: %s", log_file)
    return log_file
