# src/sideai/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, restores the encrypted collections, then:
- runs the notification dispatcher in a background thread (optional),
- runs the console REPL in the main thread (optional).
"""

from __future__ import annotations

import asyncio
import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state, restore_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..notifications.console_sink import ConsoleNotificationSink
from ..notifications.dispatcher import run_notification_dispatcher

logger = logging.getLogger(__name__)


class DispatcherThread(threading.Thread):
    """Owns a private asyncio loop running run_notification_dispatcher until stop()."""

    def __init__(self, state: AppState) -> None:
        super().__init__(name="sideai-notifications", daemon=True)
        self._state = state
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._ready = threading.Event()

    def run(self) -> None:
        loop = asyncio.new_event_loop()
        self._loop = loop
        asyncio.set_event_loop(loop)
        self._task = loop.create_task(
            run_notification_dispatcher(
                self._state.notifications,
                ConsoleNotificationSink(),
                interval_seconds=self._state.settings.dispatch_interval_seconds,
            )
        )
        self._ready.set()
        try:
            loop.run_until_complete(self._task)
        except asyncio.CancelledError:
            pass
        finally:
            loop.close()
            logger.debug("Notification dispatcher stopped.")

    def stop(self) -> None:
        self._ready.wait(timeout=5.0)
        if self._loop is not None and self._task is not None:
            self._loop.call_soon_threadsafe(self._task.cancel)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    log_file = setup_logging(log_dir=settings.log_dir, console_level=console_level)

    logger.info("Starting %s... (log file: %s)", settings.app_name, log_file)

    state = create_initial_state(settings=settings)
    restore_state(state)

    dispatcher: DispatcherThread | None = None
    if settings.notifications_enabled:
        dispatcher = DispatcherThread(state)
        dispatcher.start()

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or the platform lacks the signal.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Delivering notifications only. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        if dispatcher is not None:
            dispatcher.stop()
            dispatcher.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
