# src/taskbot/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps connectors/storage swappable and makes testing easier.
"""

from typing import Awaitable, Protocol

from ..tasks.task_models import Task


class ReplySink(Protocol):
    """
    Connector-side port: how replies leave the process.

    The connector decides how to interpret:
    - room_id (can be None)
    - to_user_id (can be None)
    - in_reply_to (event the reply answers, if the transport threads replies)
    and owns any formatting (markdown, reply threading) beyond plain text.
    """

    def send_text(
            self,
            *,
            text: str,
            room_id: str | None = None,
            to_user_id: str | None = None,
            in_reply_to: str | None = None,
    ) -> Awaitable[None]: ...


class TaskRepo(Protocol):
    # Queries
    def list_tasks(self, workspace: str, owner: str | None = None) -> list[Task]: ...
    def list_incomplete(self, workspace: str, owner: str) -> list[Task]: ...
    def list_completed(self, workspace: str, owner: str) -> list[Task]: ...
    def find_by_name(self, workspace: str, name: str) -> list[Task]: ...
    def get_active(self, workspace: str, owner: str) -> Task | None: ...
    def list_owners(self, workspace: str) -> list[str]: ...
    def list_workspaces(self) -> list[str]: ...

    # Lifecycle mutations
    def add_task(
            self,
            workspace: str,
            owner: str,
            name: str,
            *,
            created_at: float | None = None,
    ) -> bool: ...
    def activate_task(self, workspace: str, owner: str, name: str) -> bool: ...
    def complete_task(self, workspace: str, owner: str, name: str) -> bool: ...
    def delete_task(self, workspace: str, owner: str, name: str) -> bool: ...
    def clear_all(self, workspace: str) -> int: ...

    # Maintenance
    def purge_older_than(
            self, workspace: str, age_seconds: float, *, now_ts: float | None = None
    ) -> int: ...

    # Workspace settings
    def get_setting(self, workspace: str, key: str) -> str | None: ...
    def set_setting(self, workspace: str, key: str, value: str) -> None: ...
    def list_settings(self, workspace: str) -> dict[str, str]: ...
