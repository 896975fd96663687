# src/sideai/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets at all: encryption keys live in the OS credential store.
- Components receive Settings by injection; get_settings() is only used by the entrypoint.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "SIDEAI"

DEFAULT_KEYRING_SERVICE = "com.sideai.macapp"

# Real environment wins over .env.
load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    log_dir: Path

    # ---- Storage ----
    data_dir: Path
    keyring_service: str

    # ---- Notifications ----
    notifications_enabled: bool
    event_lead_minutes: int
    dispatch_interval_seconds: float

    # ---- Connector flags ----
    console_enabled: bool

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "sideai").strip() or "sideai"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/sideai"))
        log_dir = _env_path(_k("LOG_DIR"), data_dir)
        keyring_service = _env(_k("KEYRING_SERVICE"), DEFAULT_KEYRING_SERVICE).strip() or DEFAULT_KEYRING_SERVICE

        notifications_enabled = _env_bool(_k("NOTIFICATIONS_ENABLED"), True)
        event_lead_minutes = max(0, _env_int(_k("EVENT_LEAD_MINUTES"), 15))
        dispatch_interval_seconds = max(0.5, _env_float(_k("DISPATCH_INTERVAL_SECONDS"), 5.0))

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            log_dir=log_dir,
            data_dir=data_dir,
            keyring_service=keyring_service,
            notifications_enabled=notifications_enabled,
            event_lead_minutes=event_lead_minutes,
            dispatch_interval_seconds=dispatch_interval_seconds,
            console_enabled=console_enabled,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
