# src/task_checklist/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState (migrating legacy data on the way),
then runs the console REPL in the main thread. Notifications run on a
background loop started by bootstrap.
"""

from __future__ import annotations

import logging
import signal

from ..cli.bootstrap import create_initial_state, shutdown
from ..config import get_settings
from ..logging_setup import setup_logging
from .console import run_console_loop

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)
    logger.debug("Writing logs to %s", log_file)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    def _handle_signal(signum, _frame) -> None:
        # input() is blocking; turning SIGTERM into KeyboardInterrupt ends the REPL cleanly.
        logger.info("Signal %s received, shutting down...", signum)
        raise KeyboardInterrupt

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
    except (AttributeError, ValueError):
        # Not available on this platform / not in the main thread.
        pass

    try:
        run_console_loop(state)
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
