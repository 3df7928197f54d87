# src/taskbot/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then either runs a one-off maintenance
action (--import-json, --purge) or starts connectors:
- console REPL in the main thread (optional),
- Matrix connector in a background thread (optional).
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import TYPE_CHECKING

from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging
from ..tasks.task_api import import_tasks_json
from ..tasks.task_models import StoreError
from ..tasks.task_sweeper import sweep_once

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ..connectors.matrix_connector import MatrixBackgroundRunner


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskbot", description="Chat-driven per-user task tracker.")
    parser.add_argument(
        "--import-json",
        metavar="PATH",
        help='Import tasks from a JSON file shaped {"user": [{"name": ...}]} and exit.',
    )
    parser.add_argument(
        "--workspace",
        help="Target workspace for --import-json (default: the console workspace).",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        help="Run one retention purge over all workspaces and exit.",
    )
    return parser


def _shutdown(state) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        store = getattr(state, "task_store", None)
        if store is not None and hasattr(store, "close"):
            store.close()
    except Exception:
        logger.debug("Task store close failed.", exc_info=True)


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    # keep noisy libs readable
    logging.getLogger("nio").setLevel(max(console_level, logging.INFO))
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)

    try:
        state = create_initial_state(settings=settings)
    except StoreError:
        logger.exception("Task store is not available.")
        return 1

    if args.import_json:
        workspace = args.workspace or settings.console_workspace
        try:
            created = import_tasks_json(state.task_store, workspace, args.import_json)
        except (OSError, ValueError, StoreError):
            logger.exception("Import failed: %s", args.import_json)
            return 1
        print(f"Imported {created} task(s) into {workspace}.")
        return 0

    if args.purge:
        try:
            removed = sweep_once(state.task_store, default_hours=settings.retention_hours)
        except StoreError:
            logger.exception("Retention purge failed.")
            return 1
        print(f"Purged {removed} task(s).")
        return 0

    # One sweep at startup; the Matrix connector keeps sweeping periodically.
    try:
        sweep_once(state.task_store, default_hours=settings.retention_hours)
    except StoreError:
        logger.exception("Startup retention sweep failed.")

    matrix_runner: MatrixBackgroundRunner | None = None
    if settings.matrix_enabled:
        from ..connectors.matrix_connector import start_matrix_in_background

        matrix_runner = start_matrix_in_background(state)

    # Use an Event so main can wait without a busy while-loop.
    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or the platform lacks SIGTERM.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        elif matrix_runner is None:
            logger.error("No connector enabled (set TASKBOT_CONSOLE_ENABLED or TASKBOT_MATRIX_ENABLED).")
            return 1
        else:
            logger.info("Console disabled. Running Matrix connector only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if matrix_runner is not None:
            matrix_runner.stop()
            matrix_runner.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
