# src/taskbot/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..core.state import AppState

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ("/exit", "/quit")


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def run_console_loop(state: AppState) -> None:
    """
    Local REPL acting as one privileged user in one workspace.

    Workspace and user come from settings (console_workspace / console_user).
    """
    settings = state.settings
    workspace = str(getattr(settings, "console_workspace", "console"))
    user = str(getattr(settings, "console_user", "local"))
    prefix = state.processor.prefix

    logger.info("Console connector started (workspace=%s user=%s).", workspace, user)
    _print_ts(
        f"[CONSOLE] {workspace}::{user}. Use {prefix}help for commands. "
        f"Use {' or '.join(EXIT_COMMANDS)} to quit.\n"
    )

    while True:
        try:
            user_input = input(">>> You: ").strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> You: {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in EXIT_COMMANDS:
            logger.info("Console exit command received.")
            break

        try:
            reply = state.processor.handle(workspace, user, user_input, is_privileged=True)
        except Exception:
            logger.exception("Command handler crashed.")
            reply = "Internal error while handling a command."

        if reply is None:
            _print_ts(f"(not a task command; try {prefix}help)")
            continue

        _print_ts(reply)

    logger.info("Console connector finished.")
