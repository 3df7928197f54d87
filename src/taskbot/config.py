# src/taskbot/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKBOT"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


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


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


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

    # ---- Connector flags ----
    console_enabled: bool
    matrix_enabled: bool

    # ---- Matrix ----
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    matrix_rooms: List[str]

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    matrix_store_path: Path
    tasks_db_path: Path

    # ---- Commands ----
    command_prefix: str
    name_lookup_scope: str
    admins: List[str]
    moderator_power_level: int

    # ---- Console identity ----
    console_workspace: str
    console_user: str

    # ---- Retention ----
    retention_hours: int
    retention_interval_seconds: float

    # Optional explicit Matrix device name (defaults to "<app_name> (Python)").
    matrix_device_name: Optional[str] = None

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskbot") or "taskbot"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        matrix_enabled = _env_bool(_k("MATRIX_ENABLED"), False)

        matrix_homeserver = (_first_env(_k("MATRIX_HOMESERVER"), "MATRIX_HOMESERVER", default="") or "").strip()
        matrix_user_id = (_first_env(_k("MATRIX_USER_ID"), "MATRIX_USER_ID", default="") or "").strip()
        matrix_password = (_first_env(_k("MATRIX_PASSWORD"), "MATRIX_PASSWORD", default="") or "").strip()
        matrix_rooms = _env_list(_k("MATRIX_ROOMS"), [])
        matrix_device_name = _first_env(_k("MATRIX_DEVICE_NAME"), default=None)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskbot"))
        matrix_store_path = _env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store")
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        command_prefix = _env(_k("COMMAND_PREFIX"), "!")
        name_lookup_scope = _env(_k("NAME_LOOKUP_SCOPE"), "workspace").strip().lower()
        admins = _env_list(_k("ADMINS"), [])
        moderator_power_level = _env_int(_k("MODERATOR_POWER_LEVEL"), 50)

        console_workspace = _env(_k("CONSOLE_WORKSPACE"), "console")
        console_user = _env(_k("CONSOLE_USER"), "local").strip() or "local"

        retention_hours = max(0, _env_int(_k("RETENTION_HOURS"), 0))
        retention_interval_seconds = _env_float(_k("RETENTION_INTERVAL_SECONDS"), 3600.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            matrix_enabled=matrix_enabled,
            matrix_homeserver=matrix_homeserver,
            matrix_user_id=matrix_user_id,
            matrix_password=matrix_password,
            matrix_rooms=matrix_rooms,
            data_dir=data_dir,
            matrix_store_path=matrix_store_path,
            tasks_db_path=tasks_db_path,
            command_prefix=command_prefix,
            name_lookup_scope=name_lookup_scope,
            admins=admins,
            moderator_power_level=moderator_power_level,
            console_workspace=console_workspace,
            console_user=console_user,
            retention_hours=retention_hours,
            retention_interval_seconds=retention_interval_seconds,
            matrix_device_name=matrix_device_name,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
