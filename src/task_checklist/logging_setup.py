# src/task_checklist/logging_setup.py

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

# Console thresholds by logger-name prefix; the longest matching prefix wins.
# The Matrix capability syncs in a background thread and would interleave with the prompt.
CONSOLE_THRESHOLDS: dict[str, int] = {
    "task_checklist": logging.NOTSET,
    "task_checklist.notifications.matrix": logging.WARNING,
    "py.warnings": logging.ERROR,
}
# Anything not listed above (nio, aiohttp, ...).
DEFAULT_CONSOLE_THRESHOLD = logging.ERROR

LIBRARY_LEVELS: dict[str, int] = {
    "nio": logging.INFO,
    "aiohttp": logging.WARNING,
}

LOG_FILE_MAX_BYTES = 1024 * 1024
LOG_FILE_BACKUPS = 3


def console_threshold(name: str) -> int:
    best = ""
    for prefix in CONSOLE_THRESHOLDS:
        if (name == prefix or name.startswith(prefix + ".")) and len(prefix) > len(best):
            best = prefix
    return CONSOLE_THRESHOLDS[best] if best else DEFAULT_CONSOLE_THRESHOLD


class _ConsoleNoiseFilter(logging.Filter):
    """Drop records below the console threshold of their logger."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= console_threshold(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/checklist",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route everything to a rotating ``checklist.log`` and a filtered stderr view.

    Replaces handlers already on the root logger, so calling it twice does not
    duplicate output. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "checklist.log"

    root = logging.getLogger()
    root.setLevel(min(console_level, file_level))
    for h in list(root.handlers):
        root.removeHandler(h)
        if isinstance(h, logging.FileHandler):
            h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    to_file = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    to_file.setLevel(file_level)
    to_file.setFormatter(fmt)
    root.addHandler(to_file)

    for name, level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    logging.captureWarnings(True)
    return log_file
