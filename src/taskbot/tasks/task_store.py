# src/taskbot/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from collections.abc import Iterator
from pathlib import Path

from .task_models import StoreError, Task, TaskValidationError

logger = logging.getLogger(__name__)


class TaskStore:
    """
    SQLite task store.

    Tasks are keyed by (workspace, username, name). Two invariants are kept
    both in code and by partial unique indexes:
    - at most one non-completed task per (workspace, username, name)
    - at most one active task per (workspace, username)

    The schema is migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection

    Every sqlite3.Error leaving this class is re-raised as StoreError.
    """

    def __init__(self, db_path: str | Path = "tasks.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except StoreError:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Short-lived connection; commits on success, translates errors."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open task db {self._db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            with contextlib.suppress(sqlite3.Error):
                conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    @contextlib.contextmanager
    def _immediate(self) -> Iterator[sqlite3.Connection]:
        """
        Explicit write transaction.

        BEGIN IMMEDIATE takes the database write lock up front, so every read
        inside the block sees a state no other writer can change until COMMIT.
        """
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open task db {self._db_path}: {e}") from e
        conn.isolation_level = None
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    workspace TEXT NOT NULL,
                    username TEXT NOT NULL,
                    name TEXT NOT NULL,
                    active INTEGER NOT NULL DEFAULT 0,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    workspace TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT,
                    PRIMARY KEY (workspace, key)
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(tasks)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> bool:
                if name in cols:
                    return False
                cur.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)
                return True

            add_col("active", "INTEGER NOT NULL DEFAULT 0")
            add_col("completed", "INTEGER NOT NULL DEFAULT 0")
            if add_col("created_at", "REAL NOT NULL DEFAULT 0"):
                # Legacy rows have no creation time; start their retention clock now.
                cur.execute("UPDATE tasks SET created_at = ? WHERE created_at = 0", (time.time(),))

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_owner ON tasks(workspace, username)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_created ON tasks(workspace, created_at)")

            try:
                cur.execute(
                    "CREATE UNIQUE INDEX IF NOT EXISTS uq_tasks_open_name "
                    "ON tasks(workspace, username, name) WHERE completed = 0"
                )
                cur.execute(
                    "CREATE UNIQUE INDEX IF NOT EXISTS uq_tasks_active "
                    "ON tasks(workspace, username) WHERE active = 1"
                )
            except sqlite3.IntegrityError:
                # Old databases may already violate the invariants; the code paths still guard them.
                logger.warning("TaskStore: existing rows violate task invariants; unique indexes skipped")

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            workspace=str(row["workspace"]),
            owner=str(row["username"]),
            name=str(row["name"]),
            completed=bool(row["completed"]),
            active=bool(row["active"]),
            created_at=float(row["created_at"] or 0.0),
        )

    def _select(self, sql: str, params: tuple) -> list[Task]:
        with self._connect() as conn:
            cur = conn.execute(sql, params)
            return [self._row_to_task(r) for r in cur.fetchall()]

    # ---- queries ----

    def count_tasks(self) -> int:
        with self._connect() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)

    def list_tasks(self, workspace: str, owner: str | None = None) -> list[Task]:
        if owner is None:
            return self._select(
                "SELECT * FROM tasks WHERE workspace = ? ORDER BY id ASC",
                (workspace,),
            )
        return self._select(
            "SELECT * FROM tasks WHERE workspace = ? AND username = ? ORDER BY id ASC",
            (workspace, owner),
        )

    def list_incomplete(self, workspace: str, owner: str) -> list[Task]:
        return self._select(
            """
            SELECT *
            FROM tasks
            WHERE workspace = ?
              AND username = ?
              AND completed = 0
            ORDER BY id ASC
            """,
            (workspace, owner),
        )

    def list_completed(self, workspace: str, owner: str) -> list[Task]:
        return self._select(
            """
            SELECT *
            FROM tasks
            WHERE workspace = ?
              AND username = ?
              AND completed = 1
            ORDER BY id ASC
            """,
            (workspace, owner),
        )

    def find_by_name(self, workspace: str, name: str) -> list[Task]:
        """All tasks in the workspace (any owner, any state) named exactly `name`."""
        return self._select(
            "SELECT * FROM tasks WHERE workspace = ? AND name = ? ORDER BY id ASC",
            (workspace, name),
        )

    def get_active(self, workspace: str, owner: str) -> Task | None:
        tasks = self._select(
            """
            SELECT *
            FROM tasks
            WHERE workspace = ?
              AND username = ?
              AND active = 1
              AND completed = 0
            ORDER BY id ASC
                LIMIT 1
            """,
            (workspace, owner),
        )
        return tasks[0] if tasks else None

    def list_owners(self, workspace: str) -> list[str]:
        with self._connect() as conn:
            cur = conn.execute(
                "SELECT DISTINCT username FROM tasks WHERE workspace = ?",
                (workspace,),
            )
            return sorted(str(r["username"]) for r in cur.fetchall())

    def list_workspaces(self) -> list[str]:
        with self._connect() as conn:
            cur = conn.execute("SELECT DISTINCT workspace FROM tasks ORDER BY workspace ASC")
            return [str(r["workspace"]) for r in cur.fetchall()]

    # ---- mutations ----

    def add_task(
        self,
        workspace: str,
        owner: str,
        name: str,
        *,
        created_at: float | None = None,
    ) -> bool:
        """
        Insert a new incomplete, inactive task.

        No-op when the owner already has a non-completed task with this name;
        a completed one does not block. Returns True if a row was inserted.
        """
        name = (name or "").strip()
        if not name:
            raise TaskValidationError("Please provide a task name!")
        try:
            name.encode("utf-8")
        except UnicodeEncodeError:
            raise TaskValidationError(f"Task name is not valid text: {name!r}") from None

        now = time.time() if created_at is None else float(created_at)
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT OR IGNORE INTO tasks(workspace, username, name, active, completed, created_at)
                SELECT ?, ?, ?, 0, 0, ?
                WHERE NOT EXISTS (
                    SELECT 1
                    FROM tasks
                    WHERE workspace = ?
                      AND username = ?
                      AND name = ?
                      AND completed = 0
                )
                """,
                (workspace, owner, name, now, workspace, owner, name),
            )
            created = cur.rowcount == 1

        if created:
            logger.debug("Task added workspace=%s owner=%s name=%r", workspace, owner, name)
        else:
            logger.debug("Task add ignored (duplicate) workspace=%s owner=%s name=%r", workspace, owner, name)
        return created

    def activate_task(self, workspace: str, owner: str, name: str) -> bool:
        """
        Make `name` the owner's only active task.

        Clearing the other active flags and setting the target happen in one
        IMMEDIATE transaction, so concurrent activations for the same owner
        serialize. Returns False (nothing changed) when the owner has no
        non-completed task with that name.
        """
        with self._immediate() as conn:
            row = conn.execute(
                """
                SELECT id
                FROM tasks
                WHERE workspace = ?
                  AND username = ?
                  AND name = ?
                  AND completed = 0
                ORDER BY id ASC
                    LIMIT 1
                """,
                (workspace, owner, name),
            ).fetchone()
            if row is None:
                return False

            conn.execute(
                "UPDATE tasks SET active = 0 WHERE workspace = ? AND username = ? AND active = 1",
                (workspace, owner),
            )
            conn.execute("UPDATE tasks SET active = 1 WHERE id = ?", (int(row["id"]),))

        logger.debug("Task activated workspace=%s owner=%s name=%r", workspace, owner, name)
        return True

    def complete_task(self, workspace: str, owner: str, name: str) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE tasks
                SET completed = 1,
                    active = 0
                WHERE workspace = ?
                  AND username = ?
                  AND name = ?
                  AND completed = 0
                """,
                (workspace, owner, name),
            )
            return cur.rowcount > 0

    def delete_task(self, workspace: str, owner: str, name: str) -> bool:
        """Permanently remove the owner's non-completed task `name` (cancellation)."""
        with self._connect() as conn:
            cur = conn.execute(
                """
                DELETE FROM tasks
                WHERE workspace = ?
                  AND username = ?
                  AND name = ?
                  AND completed = 0
                """,
                (workspace, owner, name),
            )
            return cur.rowcount > 0

    def clear_all(self, workspace: str) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM tasks WHERE workspace = ?", (workspace,))
            n = int(cur.rowcount)
        logger.info("Tasks cleared workspace=%s removed=%d", workspace, n)
        return n

    def purge_older_than(
        self, workspace: str, age_seconds: float, *, now_ts: float | None = None
    ) -> int:
        """Delete every task in the workspace created before now - age_seconds."""
        if now_ts is None:
            now_ts = time.time()
        cutoff = float(now_ts) - max(0.0, float(age_seconds))

        with self._connect() as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE workspace = ? AND created_at < ?",
                (workspace, cutoff),
            )
            return int(cur.rowcount)

    # ---- workspace settings ----

    def get_setting(self, workspace: str, key: str) -> str | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM settings WHERE workspace = ? AND key = ?",
                (workspace, key),
            ).fetchone()
            return None if row is None else row["value"]

    def set_setting(self, workspace: str, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO settings(workspace, key, value)
                VALUES (?, ?, ?)
                ON CONFLICT(workspace, key) DO UPDATE SET value = excluded.value
                """,
                (workspace, key, value),
            )

    def list_settings(self, workspace: str) -> dict[str, str]:
        with self._connect() as conn:
            cur = conn.execute(
                "SELECT key, value FROM settings WHERE workspace = ? ORDER BY key ASC",
                (workspace,),
            )
            return {str(r["key"]): str(r["value"] or "") for r in cur.fetchall()}

    def clear_settings(self, workspace: str) -> int:
        with self._connect() as conn:
            cur = conn.execute("DELETE FROM settings WHERE workspace = ?", (workspace,))
            return int(cur.rowcount)
