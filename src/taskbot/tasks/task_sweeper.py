# src/taskbot/tasks/task_sweeper.py

from __future__ import annotations

"""
Retention sweeper.

A small polling loop that, for every workspace with tasks:
- looks up the effective retention (workspace setting or global default),
- purges tasks created before now - retention.

It is maintenance only: command handling never triggers it.
"""

import asyncio
import logging
import time

from ..core.ports import TaskRepo
from .task_api import purge_old_tasks, workspace_retention_hours

logger = logging.getLogger(__name__)


def sweep_once(store: TaskRepo, *, default_hours: int, now_ts: float | None = None) -> int:
    """Run one purge pass over all workspaces. Returns the number of removed tasks."""
    if now_ts is None:
        now_ts = time.time()

    removed = 0
    for workspace in store.list_workspaces():
        try:
            hours = workspace_retention_hours(store, workspace, default_hours)
            removed += purge_old_tasks(store, workspace, hours, now_ts=now_ts)
        except Exception:
            logger.exception("Retention purge failed workspace=%s", workspace)
    return removed


async def run_retention_sweeper(
        task_store: TaskRepo,
        *,
        default_hours: int,
        interval_seconds: float = 3600.0,
) -> None:
    """
    Every interval_seconds run sweep_once() in a worker thread
    (SQLite calls are blocking).

    To stop the sweeper, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        try:
            removed = await asyncio.to_thread(sweep_once, task_store, default_hours=default_hours)
            if removed:
                logger.info("Retention sweep removed %d task(s)", removed)
        except Exception:
            logger.exception("Retention sweep failed")

        await asyncio.sleep(sleep_s)
