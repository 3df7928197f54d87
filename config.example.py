# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets; keep them in .env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKBOT_APP_NAME": "App display name (default: taskbot).",
    "TASKBOT_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Connectors
    "TASKBOT_CONSOLE_ENABLED": "Enable console connector (true/false, default: true).",
    "TASKBOT_MATRIX_ENABLED": "Enable Matrix connector (true/false, default: false).",
    # Matrix
    "TASKBOT_MATRIX_HOMESERVER": "Matrix homeserver URL.",
    "TASKBOT_MATRIX_USER_ID": "Matrix user ID (bot).",
    "TASKBOT_MATRIX_PASSWORD": "Password for first login (session stored locally).",
    "TASKBOT_MATRIX_DEVICE_NAME": "Device name used on first login (default: '<app name> (Python)').",
    "TASKBOT_MATRIX_ROOMS": "Optional allowlist of room IDs (empty => all joined rooms).",
    # Paths (gitignored)
    "TASKBOT_DATA_DIR": "Local data directory (default: .local/taskbot).",
    "TASKBOT_MATRIX_STORE_PATH": "Matrix session directory (default: <data_dir>/matrix_store).",
    "TASKBOT_TASKS_DB_PATH": "TaskStore SQLite path (default: <data_dir>/tasks.sqlite3).",
    # Commands
    "TASKBOT_COMMAND_PREFIX": "Prefix that marks task commands (default: !).",
    "TASKBOT_NAME_LOOKUP_SCOPE": (
        "How task names in start/cancel are looked up: 'workspace' (any user, default) or 'owner'."
    ),
    "TASKBOT_ADMINS": "Comma/space separated Matrix IDs that may run privileged commands everywhere.",
    "TASKBOT_MODERATOR_POWER_LEVEL": "Room power level that counts as moderator (default: 50).",
    # Console identity
    "TASKBOT_CONSOLE_WORKSPACE": "Workspace used by the console connector (default: console).",
    "TASKBOT_CONSOLE_USER": "User name used by the console connector (default: local).",
    # Retention
    "TASKBOT_RETENTION_HOURS": (
        "Purge tasks older than this many hours (default: 0 = keep forever). "
        "Workspaces can override it with '!config retention_hours <n>'."
    ),
    "TASKBOT_RETENTION_INTERVAL_SECONDS": "How often the Matrix connector runs the purge (default: 3600).",
}
