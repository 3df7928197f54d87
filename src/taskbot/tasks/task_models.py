# src/taskbot/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class Task:
    id: int
    workspace: str
    owner: str
    name: str

    completed: bool
    active: bool

    created_at: float


class TaskError(Exception):
    """Base class for task subsystem errors."""


class TaskCommandError(TaskError):
    """
    User-facing command failure.

    The exception text is the reply sent back to the user; no store mutation
    has happened when this is raised.
    """


class TaskValidationError(TaskCommandError):
    pass


class TaskNotFoundError(TaskCommandError):
    pass


class TaskPermissionError(TaskCommandError):
    pass


class StoreError(TaskError):
    """Persistence failure (connectivity, constraint violation, ...)."""
