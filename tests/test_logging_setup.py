# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

from task_checklist.logging_setup import _ConsoleNoiseFilter, console_threshold, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_threshold_uses_longest_prefix() -> None:
    assert console_threshold("task_checklist.cli.commands") == logging.NOTSET
    assert console_threshold("task_checklist.notifications.matrix") == logging.WARNING
    assert console_threshold("task_checklist.notifications.bridge") == logging.NOTSET
    assert console_threshold("py.warnings") == logging.ERROR
    assert console_threshold("nio.responses") == logging.ERROR
    # Prefix match is per dotted segment.
    assert console_threshold("task_checklist_extra") == logging.ERROR


def test_console_filter_hides_background_noise() -> None:
    f = _ConsoleNoiseFilter()
    assert f.filter(_record("task_checklist.domain.repository", logging.DEBUG))
    assert not f.filter(_record("task_checklist.notifications.matrix", logging.INFO))
    assert f.filter(_record("task_checklist.notifications.matrix", logging.WARNING))
    assert not f.filter(_record("aiohttp.client", logging.WARNING))
    assert f.filter(_record("aiohttp.client", logging.ERROR))


def test_setup_logging_writes_file_and_replaces_handlers(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging(log_dir=tmp_path)
        log_file = setup_logging(log_dir=tmp_path)

        assert len(root.handlers) == 2
        logging.getLogger("task_checklist.test").info("hello file")
        for h in root.handlers:
            h.flush()
        assert log_file == tmp_path / "checklist.log"
        assert "hello file" in log_file.read_text("utf-8")
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)
        logging.captureWarnings(False)
