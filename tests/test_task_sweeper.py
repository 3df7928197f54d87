# tests/test_task_sweeper.py

from __future__ import annotations

import asyncio
import time

import pytest

from taskbot.tasks.task_store import TaskStore
from taskbot.tasks.task_sweeper import run_retention_sweeper, sweep_once


def test_sweep_once_uses_per_workspace_retention(store: TaskStore) -> None:
    now = time.time()
    day_old = now - 26 * 3600
    store.add_task("default-ws", "u", "old", created_at=day_old)
    store.add_task("keep-ws", "u", "old", created_at=day_old)
    store.add_task("short-ws", "u", "hour-old", created_at=now - 2 * 3600)
    store.add_task("short-ws", "u", "fresh", created_at=now)

    store.set_setting("keep-ws", "retention_hours", "0")
    store.set_setting("short-ws", "retention_hours", "1")

    removed = sweep_once(store, default_hours=24, now_ts=now)

    assert removed == 2
    assert store.list_tasks("default-ws") == []
    assert [t.name for t in store.list_tasks("keep-ws")] == ["old"]
    assert [t.name for t in store.list_tasks("short-ws")] == ["fresh"]


@pytest.mark.asyncio
async def test_sweeper_loop_purges_until_cancelled(store: TaskStore) -> None:
    store.add_task("ws", "u", "old", created_at=time.time() - 10 * 3600)

    runner = asyncio.create_task(
        run_retention_sweeper(store, default_hours=1, interval_seconds=0.01)
    )

    for _ in range(100):
        await asyncio.sleep(0.01)
        if not store.list_tasks("ws"):
            break

    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert store.list_tasks("ws") == []
