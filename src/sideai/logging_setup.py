# src/sideai/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "sideai.log"

# Background components that only reach the console at WARNING+.
QUIET_PREFIXES: tuple[str, ...] = ("sideai.notifications.dispatcher",)


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console filter for the interactive REPL.

    sideai records pass, except the quiet background prefixes below WARNING.
    Everything else (py.warnings, keyring backend probing, ...) needs ERROR+.
    """

    def __init__(self, quiet_prefixes: Iterable[str] = QUIET_PREFIXES) -> None:
        super().__init__()
        self._quiet = tuple(quiet_prefixes)

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == "sideai" or name.startswith("sideai."):
            if name.startswith(self._quiet):
                return record.levelno >= logging.WARNING
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/sideai",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
) -> Path:
    """
    Configure the root logger once, at startup:
    - stderr handler, filtered for interactive use
    - rotating file handler with everything at file_level

    Returns the log file path. Secrets are never passed to loggers, so the file
    holds ids and counts only.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(threadName)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # keyring logs every backend it tries at DEBUG.
    logging.getLogger("keyring").setLevel(logging.INFO)
    return log_file
