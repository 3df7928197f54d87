# tests/conftest.py

from __future__ import annotations

import random
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskbot.core.state import AppState
from taskbot.tasks.task_commands import NameScope, TaskCommandProcessor
from taskbot.tasks.task_store import TaskStore

WS = "guild"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the connectors.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskbot-test",
        data_dir=tmp_path,
        tasks_db_path=tmp_path / "tasks.sqlite3",
        command_prefix="!",
        name_lookup_scope="workspace",
        admins=["@admin:example.org"],
        moderator_power_level=50,
        console_workspace="console",
        console_user="tester",
        retention_hours=0,
        retention_interval_seconds=3600.0,
        matrix_enabled=False,
        matrix_rooms=[],
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> TaskStore:
    """Real SQLite store in tmp_path: its correctness is part of what we test."""
    return TaskStore(settings.tasks_db_path)


@pytest.fixture()
def processor(store: TaskStore) -> TaskCommandProcessor:
    return TaskCommandProcessor(store, prefix="!", name_scope=NameScope.WORKSPACE, rng=random.Random(7))


@pytest.fixture()
def run(processor: TaskCommandProcessor):
    """Issue a command as `owner` (default "alice") in the default workspace."""

    def _run(text: str, owner: str = "alice", *, privileged: bool = False, workspace: str = WS):
        return processor.handle(workspace, owner, text, privileged)

    return _run


@pytest.fixture()
def state(settings: SimpleNamespace, store: TaskStore, processor: TaskCommandProcessor) -> AppState:
    return AppState(settings=settings, task_store=store, processor=processor)
