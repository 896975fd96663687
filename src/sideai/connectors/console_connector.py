# src/sideai/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..storage.collection_store import REMINDERS, SCHEDULE_EVENTS, TASKS

logger = logging.getLogger(__name__)

PROMPT = ">>> "
EXIT_COMMANDS = ("/exit", "/quit")


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def _echo_input(line: str) -> None:
    """Overwrite the prompt line with a timestamped copy (TTY only)."""
    if not sys.stdout.isatty():
        return
    sys.stdout.write("\033[1A\033[2K\r")
    sys.stdout.write(f"[{_ts_local()}] {PROMPT}{line}\n")
    sys.stdout.flush()


def _startup_banner(state: AppState) -> list[str]:
    rm = state.records
    lines = [
        "[CONSOLE] Use /help for commands. Use /exit to quit.",
        f"[CONSOLE] Loaded {len(rm.tasks)} tasks, {len(rm.schedule_events)} events, "
        f"{len(rm.reminders)} reminders.",
    ]
    for name in (TASKS, SCHEDULE_EVENTS, REMINDERS):
        err = rm.last_error(name)
        if err is None:
            continue
        if rm.is_loaded(name):
            lines.append(
                f"[CONSOLE] WARNING: {name} could not be loaded ({type(err).__name__}); "
                "the file was moved aside and the list started empty."
            )
        else:
            lines.append(
                f"[CONSOLE] WARNING: {name} could not be loaded ({type(err).__name__}); "
                "the file was left untouched and changes will not be saved until restart."
            )
    return lines


def handle_line(state: AppState, line: str) -> str:
    """Run one console line through the command registry and return the reply text."""
    try:
        with state.lock:
            response = command_registry.handle(state, line, emit=_print_ts)
    except Exception:
        logger.exception("Command handler crashed line=%r", line)
        return "Internal error while handling a command."
    if response is None:
        return "Commands start with '/'. Use /help to list available commands."
    return response


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")
    for line in _startup_banner(state):
        _print_ts(line)

    while True:
        try:
            user_input = input(PROMPT).strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        _echo_input(user_input)
        if not user_input:
            continue
        if user_input.lower() in EXIT_COMMANDS:
            logger.info("Console exit command received.")
            break

        _print_ts(handle_line(state, user_input))

    logger.info("Console connector finished.")
