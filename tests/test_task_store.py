# tests/test_task_store.py

from __future__ import annotations

import sqlite3
import threading
import time
from pathlib import Path

import pytest

from taskbot.tasks.task_models import StoreError, TaskValidationError
from taskbot.tasks.task_store import TaskStore

WS = "test"


def _add_test_tasks(store: TaskStore) -> None:
    store.add_task(WS, "user", "task1")
    store.add_task(WS, "user", "task2")
    store.add_task(WS, "user2", "task3")


def _info(tasks) -> list[tuple[str, str, bool, bool]]:
    return [(t.owner, t.name, t.completed, t.active) for t in tasks]


def test_list_tasks_and_add_task(store: TaskStore) -> None:
    assert store.list_tasks(WS) == []

    _add_test_tasks(store)

    assert _info(store.list_tasks(WS)) == [
        ("user", "task1", False, False),
        ("user", "task2", False, False),
        ("user2", "task3", False, False),
    ]
    assert [t.name for t in store.list_tasks(WS, "user")] == ["task1", "task2"]
    assert store.list_tasks("other-workspace") == []


def test_add_task_ignores_open_duplicates(store: TaskStore) -> None:
    assert store.add_task(WS, "user", "task1") is True
    assert store.add_task(WS, "user", "task1") is False
    assert len(store.list_tasks(WS)) == 1


def test_add_task_allows_name_of_completed_task(store: TaskStore) -> None:
    store.add_task(WS, "user", "task1")
    store.complete_task(WS, "user", "task1")

    assert store.add_task(WS, "user", "task1") is True
    assert [(t.name, t.completed) for t in store.list_tasks(WS)] == [("task1", True), ("task1", False)]


def test_add_task_same_name_for_different_owners(store: TaskStore) -> None:
    store.add_task(WS, "user", "shared")
    store.add_task(WS, "user2", "shared")
    assert len(store.find_by_name(WS, "shared")) == 2


def test_add_task_rejects_blank_name(store: TaskStore) -> None:
    with pytest.raises(TaskValidationError):
        store.add_task(WS, "user", "   ")


def test_add_task_rejects_unencodable_name(store: TaskStore) -> None:
    with pytest.raises(TaskValidationError):
        store.add_task(WS, "user", "bad \udcff")
    assert store.list_tasks(WS) == []


def test_complete_task(store: TaskStore) -> None:
    _add_test_tasks(store)
    store.activate_task(WS, "user", "task1")

    assert store.complete_task(WS, "user", "task1") is True

    assert _info(store.list_tasks(WS, "user")) == [
        ("user", "task1", True, False),
        ("user", "task2", False, False),
    ]
    assert store.complete_task(WS, "user", "task1") is False


def test_activate_task_is_exclusive(store: TaskStore) -> None:
    _add_test_tasks(store)
    store.activate_task(WS, "user2", "task3")

    assert store.activate_task(WS, "user", "task1") is True
    assert [t.name for t in store.list_tasks(WS, "user") if t.active] == ["task1"]

    assert store.activate_task(WS, "user", "task2") is True
    assert [t.name for t in store.list_tasks(WS, "user") if t.active] == ["task2"]

    # Other owners are untouched.
    assert store.get_active(WS, "user2").name == "task3"


def test_activate_task_is_exclusive_across_threads(store: TaskStore) -> None:
    names = [f"task{i}" for i in range(8)]
    for name in names:
        store.add_task(WS, "user", name)

    errors: list[BaseException] = []

    def worker(offset: int) -> None:
        try:
            for i in range(30):
                store.activate_task(WS, "user", names[(offset + i) % len(names)])
        except BaseException as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert sum(t.active for t in store.list_tasks(WS, "user")) == 1


def test_activate_task_unknown_or_completed_changes_nothing(store: TaskStore) -> None:
    _add_test_tasks(store)
    store.activate_task(WS, "user", "task1")

    assert store.activate_task(WS, "user", "nope") is False
    assert store.activate_task(WS, "user", "task3") is False  # belongs to user2
    assert store.get_active(WS, "user").name == "task1"

    store.complete_task(WS, "user", "task1")
    assert store.activate_task(WS, "user", "task1") is False
    assert store.get_active(WS, "user") is None


def test_get_active(store: TaskStore) -> None:
    _add_test_tasks(store)
    assert store.get_active(WS, "user") is None

    store.activate_task(WS, "user", "task1")

    task = store.get_active(WS, "user")
    assert task is not None
    assert task.name == "task1"
    assert task.workspace == WS
    assert task.owner == "user"


def test_list_incomplete_and_completed(store: TaskStore) -> None:
    _add_test_tasks(store)

    assert len(store.list_incomplete(WS, "user")) == 2
    assert len(store.list_incomplete(WS, "user2")) == 1

    store.complete_task(WS, "user", "task1")

    assert [t.name for t in store.list_incomplete(WS, "user")] == ["task2"]
    assert [t.name for t in store.list_completed(WS, "user")] == ["task1"]
    assert store.list_completed(WS, "nobody") == []


def test_find_by_name(store: TaskStore) -> None:
    _add_test_tasks(store)

    assert len(store.find_by_name(WS, "task1")) == 1
    assert store.find_by_name(WS, "invalid") == []
    assert store.find_by_name("elsewhere", "task1") == []


def test_list_owners_sorted_distinct(store: TaskStore) -> None:
    store.add_task(WS, "zed", "a")
    _add_test_tasks(store)

    assert store.list_owners(WS) == ["user", "user2", "zed"]
    assert store.list_owners("empty") == []


def test_delete_task(store: TaskStore) -> None:
    _add_test_tasks(store)

    assert store.delete_task(WS, "user", "task1") is True
    assert [t.name for t in store.list_tasks(WS, "user")] == ["task2"]

    assert store.delete_task(WS, "user", "task1") is False
    assert store.delete_task(WS, "user", "task3") is False  # not this owner's


def test_delete_task_keeps_completed_history(store: TaskStore) -> None:
    store.add_task(WS, "user", "task1")
    store.complete_task(WS, "user", "task1")
    store.add_task(WS, "user", "task1")

    assert store.delete_task(WS, "user", "task1") is True
    assert _info(store.list_tasks(WS, "user")) == [("user", "task1", True, False)]


def test_clear_all_only_touches_one_workspace(store: TaskStore) -> None:
    _add_test_tasks(store)
    store.add_task("other", "user", "keep")

    assert store.clear_all(WS) == 3
    assert store.list_tasks(WS) == []
    assert [t.name for t in store.list_tasks("other")] == ["keep"]


def test_purge_older_than(store: TaskStore) -> None:
    now = time.time()
    store.add_task(WS, "user", "task1", created_at=now - 500 * 60)
    store.add_task(WS, "user", "task2", created_at=now)
    store.add_task("other", "user", "old", created_at=now - 500 * 60)

    assert store.purge_older_than(WS, 60 * 60, now_ts=now) == 1

    assert [t.name for t in store.list_tasks(WS, "user")] == ["task2"]
    assert [t.name for t in store.list_tasks("other")] == ["old"]


def test_list_workspaces(store: TaskStore) -> None:
    store.add_task("b", "user", "x")
    store.add_task("a", "user", "y")
    store.add_task("b", "user2", "z")

    assert store.list_workspaces() == ["a", "b"]


def test_settings_are_per_workspace(store: TaskStore) -> None:
    store.set_setting("test", "foo", "bar")
    store.set_setting("test2", "foo", "bar2")
    assert store.get_setting("test", "foo") == "bar"
    assert store.get_setting("test2", "foo") == "bar2"

    store.set_setting("test", "foo", "baz")
    assert store.get_setting("test", "foo") == "baz"
    assert store.get_setting("test2", "foo") == "bar2"

    assert store.list_settings("test") == {"foo": "baz"}
    assert store.clear_settings("test") == 1
    assert store.get_setting("test", "foo") is None
    assert store.get_setting("test2", "foo") == "bar2"


def test_schema_rejects_second_active_row(store: TaskStore, tmp_path: Path) -> None:
    store.add_task(WS, "user", "task1")
    store.add_task(WS, "user", "task2")
    store.activate_task(WS, "user", "task1")

    conn = sqlite3.connect(str(tmp_path / "tasks.sqlite3"))
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute("UPDATE tasks SET active = 1 WHERE name = 'task2'")
    finally:
        conn.close()


def test_migrates_legacy_table_without_created_at(tmp_path: Path) -> None:
    db = tmp_path / "legacy.sqlite3"
    conn = sqlite3.connect(str(db))
    conn.execute(
        """
        CREATE TABLE tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            workspace TEXT NOT NULL,
            username TEXT NOT NULL,
            name TEXT NOT NULL,
            active INTEGER NOT NULL DEFAULT 0,
            completed INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    conn.execute("INSERT INTO tasks(workspace, username, name) VALUES ('ws', 'u', 'old task')")
    conn.commit()
    conn.close()

    before = time.time()
    store = TaskStore(db)

    (task,) = store.list_tasks("ws")
    assert task.name == "old task"
    assert task.created_at >= before


def test_store_errors_are_wrapped(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    (tmp_path / "tasks.sqlite3").unlink()
    (tmp_path / "tasks.sqlite3").mkdir()

    with pytest.raises(StoreError):
        store.list_tasks(WS)
