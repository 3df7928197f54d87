# src/taskbot/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..tasks.task_commands import TaskCommandProcessor
from .ports import TaskRepo


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: object

    task_store: TaskRepo
    processor: TaskCommandProcessor
