# src/taskbot/tasks/task_api.py

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any

from ..core.ports import TaskRepo

logger = logging.getLogger(__name__)

RETENTION_SETTING = "retention_hours"


def workspace_retention_hours(store: TaskRepo, workspace: str, default_hours: int) -> int:
    """
    Effective retention for a workspace: the `retention_hours` workspace setting
    when present and valid, else default_hours. 0 means "keep forever".
    """
    raw = store.get_setting(workspace, RETENTION_SETTING)
    if raw is None or not raw.strip():
        return max(0, int(default_hours))
    try:
        return max(0, int(raw))
    except ValueError:
        logger.warning("Invalid %s=%r for workspace=%s; using default", RETENTION_SETTING, raw, workspace)
        return max(0, int(default_hours))


def purge_old_tasks(
    store: TaskRepo,
    workspace: str,
    max_age_hours: int,
    *,
    now_ts: float | None = None,
) -> int:
    """
    Maintenance helper: delete tasks older than max_age_hours.

    Never triggered by chat commands. max_age_hours <= 0 disables purging.
    """
    if max_age_hours <= 0:
        return 0
    if now_ts is None:
        now_ts = time.time()

    removed = store.purge_older_than(workspace, max_age_hours * 3600, now_ts=now_ts)
    if removed:
        logger.info("Purged %d task(s) older than %dh in workspace=%s", removed, max_age_hours, workspace)
    return removed


def import_tasks_json(store: TaskRepo, workspace: str, path: str | Path) -> int:
    """
    One-off import of a legacy task dump.

    Expected shape: {"username": [{"name": "...", ...}, ...], ...}
    Entries without a name are skipped; duplicates of open tasks are ignored
    by the store. Returns the number of tasks actually created.
    """
    path = Path(path)
    data: Any = json.loads(path.read_text("utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object keyed by username")

    created = 0
    for username, items in data.items():
        if not isinstance(username, str) or not isinstance(items, list):
            logger.warning("Import: skipping malformed entry for %r", username)
            continue
        for item in items:
            name = item.get("name") if isinstance(item, dict) else None
            if not isinstance(name, str) or not name.strip():
                continue
            if store.add_task(workspace, username, name):
                created += 1

    logger.info("Imported %d task(s) from %s into workspace=%s", created, path, workspace)
    return created
