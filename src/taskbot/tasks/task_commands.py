# src/taskbot/tasks/task_commands.py

"""
Chat command processor: the task lifecycle state machine.

Transport-agnostic:
- connectors hand over (workspace, owner, raw text, is_privileged),
- the processor reads/writes the task store and returns reply text,
- connectors decide how to deliver the reply.

Key invariants:
- the store is the only source of truth; every command reads it fresh,
- at most one active task per (workspace, owner), enforced by the store,
- text that is not one of our commands yields None so a host can route it elsewhere.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum

from ..core.ports import TaskRepo
from .task_models import (
    StoreError,
    Task,
    TaskCommandError,
    TaskNotFoundError,
    TaskPermissionError,
    TaskValidationError,
)

logger = logging.getLogger(__name__)

ADD_MESSAGES = (
    "You got this!",
    "I believe in you!",
    "You can do anything!",
    "Let's go!",
)

COMPLETION_MESSAGES = (
    "Good job!",
    "You did it!",
    "Woohoo!",
    "Way to go!",
    "You're crushing it!",
)

NO_ACTIVE_TASK = "You have no active task!"
NO_TASKS = "No tasks found!"

_INDEX_RE = re.compile(r"[0-9]+")


class NameScope(StrEnum):
    """
    Where a task *name* is looked up when resolving command arguments.

    WORKSPACE matches names of any owner in the workspace; OWNER only the
    issuing owner's tasks. Mutations are always scoped to the issuing owner.
    """

    WORKSPACE = "workspace"
    OWNER = "owner"

    @classmethod
    def from_config(cls, raw: str | None) -> NameScope:
        if not raw:
            return cls.WORKSPACE
        try:
            return cls(raw.strip().lower())
        except ValueError:
            logger.warning("Unknown name lookup scope %r; using %s", raw, cls.WORKSPACE.value)
            return cls.WORKSPACE


def _non_negative_int(raw: str) -> str:
    try:
        n = int(raw)
    except ValueError:
        raise TaskValidationError(f"Expected a whole number, got: {raw}") from None
    if n < 0:
        raise TaskValidationError(f"Expected a number >= 0, got: {raw}")
    return str(n)


# Workspace settings the `config` command may change, with their validators.
WORKSPACE_SETTINGS: dict[str, Callable[[str], str]] = {
    "retention_hours": _non_negative_int,
}


@dataclass(slots=True)
class CommandContext:
    store: TaskRepo
    registry: CommandRegistry
    workspace: str
    owner: str
    is_privileged: bool
    prefix: str
    name_scope: NameScope
    rng: random.Random

    def pick(self, messages: Sequence[str]) -> str:
        return self.rng.choice(messages)


CommandHandler = Callable[[CommandContext, str], str]


class CommandRegistry:
    """Keyword -> handler map used by the processor (help, add, done, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, tuple[str, str]] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        usage: str | None = None,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = (usage or key, help_text)
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def get(self, name: str) -> CommandHandler | None:
        return self._handlers.get(name.lower())

    def build_help(self, prefix: str = "") -> str:
        lines = ["Commands:"]
        for usage, help_text in self._help.values():
            lines.append(f"  {prefix}{usage} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def resolve_task_name(ctx: CommandContext, token: str) -> str | None:
    """
    Resolve a user-supplied task reference.

    All-digit tokens are 1-based indexes into the owner's incomplete tasks
    (creation order); anything else is a literal name looked up per ctx.name_scope.
    Returns the task name, or None if nothing matches.
    """
    token = token.strip()
    if not token:
        return None

    if _INDEX_RE.fullmatch(token):
        tasks = ctx.store.list_incomplete(ctx.workspace, ctx.owner)
        idx = int(token) - 1
        if 0 <= idx < len(tasks):
            return tasks[idx].name
        return None

    matches: list[Task]
    if ctx.name_scope == NameScope.OWNER:
        matches = [t for t in ctx.store.list_tasks(ctx.workspace, ctx.owner) if t.name == token]
    else:
        matches = ctx.store.find_by_name(ctx.workspace, token)
    return matches[0].name if matches else None


def _activate_first_incomplete(ctx: CommandContext) -> str | None:
    tasks = ctx.store.list_incomplete(ctx.workspace, ctx.owner)
    if not tasks:
        return None
    ctx.store.activate_task(ctx.workspace, ctx.owner, tasks[0].name)
    return tasks[0].name


def _check_text(args: str) -> None:
    # SQLite stores UTF-8; lone surrogates from a decoded JSON body cannot be bound.
    try:
        args.encode("utf-8")
    except UnicodeEncodeError:
        raise TaskValidationError("Task names must be valid text!") from None


def _numbered(tasks: list[Task], *, flag_active: bool = False) -> list[str]:
    lines = []
    for i, task in enumerate(tasks, start=1):
        line = f"{i}. {task.name}"
        if flag_active and task.active:
            line += " (active)"
        lines.append(line)
    return lines


# ---- handlers ----


def cmd_help(ctx: CommandContext, args: str) -> str:
    return ctx.registry.build_help(ctx.prefix)


def cmd_add(ctx: CommandContext, args: str) -> str:
    name = args.strip()
    if not name:
        raise TaskValidationError("Please provide a task name!")

    ctx.store.add_task(ctx.workspace, ctx.owner, name)
    if ctx.store.get_active(ctx.workspace, ctx.owner) is None:
        ctx.store.activate_task(ctx.workspace, ctx.owner, name)

    return f"Added your new task: {name}\n{ctx.pick(ADD_MESSAGES)}"


def cmd_start(ctx: CommandContext, args: str) -> str:
    """
    start <name or number>

    Activates an existing task, or adds and activates a new one. A name that
    only resolves to another owner's (or an already completed) task cannot be
    activated for this owner, so it is started as a new task.
    """
    token = args.strip()
    if not token:
        raise TaskValidationError("Please provide a task name!")

    name = resolve_task_name(ctx, token)
    if name is not None and ctx.store.activate_task(ctx.workspace, ctx.owner, name):
        return f"Started task: {name}"

    ctx.store.add_task(ctx.workspace, ctx.owner, token)
    ctx.store.activate_task(ctx.workspace, ctx.owner, token)
    return f"Started your new task: {token}\n{ctx.pick(ADD_MESSAGES)}"


def cmd_current(ctx: CommandContext, args: str) -> str:
    task = ctx.store.get_active(ctx.workspace, ctx.owner)
    if task is None:
        return NO_ACTIVE_TASK
    return f"Your active task is: {task.name}"


def cmd_done(ctx: CommandContext, args: str) -> str:
    task = ctx.store.get_active(ctx.workspace, ctx.owner)
    if task is None:
        raise TaskNotFoundError(NO_ACTIVE_TASK)

    ctx.store.complete_task(ctx.workspace, ctx.owner, task.name)
    msg = f"Completed task: {task.name}\n{ctx.pick(COMPLETION_MESSAGES)}"

    next_name = _activate_first_incomplete(ctx)
    if next_name is not None:
        msg += f"\nNext up: {next_name}!"
    return msg


def cmd_cancel(ctx: CommandContext, args: str) -> str:
    """
    cancel [name or number]

    Without an argument cancels the active task. When the canceled task was the
    active one, the earliest remaining task becomes active.
    """
    token = args.strip()
    active = ctx.store.get_active(ctx.workspace, ctx.owner)

    if token:
        name = resolve_task_name(ctx, token)
        if name is None:
            raise TaskNotFoundError(f"Could not find task: {token}")
    else:
        if active is None:
            raise TaskNotFoundError(NO_ACTIVE_TASK)
        name = active.name

    if not ctx.store.delete_task(ctx.workspace, ctx.owner, name):
        raise TaskNotFoundError(f"Could not find task: {token or name}")

    msg = f"Canceled task: {name}"
    if active is not None and ctx.store.get_active(ctx.workspace, ctx.owner) is None:
        next_name = _activate_first_incomplete(ctx)
        if next_name is not None:
            msg += f"\nNext up: {next_name}!"
    return msg


def cmd_advance(ctx: CommandContext, args: str) -> str:
    tasks = ctx.store.list_incomplete(ctx.workspace, ctx.owner)
    idx = next((i for i, t in enumerate(tasks) if t.active), -1)
    if idx == -1:
        raise TaskNotFoundError(NO_ACTIVE_TASK)

    target = tasks[idx]
    if len(tasks) > 1:
        # Wraps to the oldest task after the newest one.
        target = tasks[(idx + 1) % len(tasks)]
        ctx.store.activate_task(ctx.workspace, ctx.owner, target.name)

    return f"Your active task is: {target.name}"


def cmd_list_mine(ctx: CommandContext, args: str) -> str:
    tasks = ctx.store.list_incomplete(ctx.workspace, ctx.owner)
    if not tasks:
        return NO_TASKS
    return "Your tasks:\n\n" + "\n".join(_numbered(tasks, flag_active=True))


def cmd_list_all(ctx: CommandContext, args: str) -> str:
    sections: list[str] = []
    for owner in ctx.store.list_owners(ctx.workspace):
        tasks = ctx.store.list_incomplete(ctx.workspace, owner)
        if tasks:
            sections.append("\n".join([f"{owner}:", *_numbered(tasks)]))

    if not sections:
        return NO_TASKS
    return "Current tasks:\n\n" + "\n\n".join(sections)


def cmd_list_completed(ctx: CommandContext, args: str) -> str:
    sections: list[str] = []
    for owner in ctx.store.list_owners(ctx.workspace):
        tasks = ctx.store.list_completed(ctx.workspace, owner)
        if tasks:
            sections.append("\n".join([f"{owner}:", *(f"* {t.name}" for t in tasks)]))

    if not sections:
        return NO_TASKS
    return "Completed tasks:\n\n" + "\n\n".join(sections)


def cmd_clear_all(ctx: CommandContext, args: str) -> str:
    if not ctx.is_privileged:
        raise TaskPermissionError("You do not have permission to clear tasks!")
    ctx.store.clear_all(ctx.workspace)
    return "All tasks have been cleared!"


def cmd_config(ctx: CommandContext, args: str) -> str:
    """
    config             -> list workspace settings
    config <key>       -> show one setting
    config <key> <val> -> change a setting (privileged)
    """
    parts = args.split(maxsplit=1)

    if not parts:
        values = ctx.store.list_settings(ctx.workspace)
        if not values:
            return "No workspace settings set."
        lines = ["Workspace settings:"]
        for key, value in values.items():
            lines.append(f"  {key} = {value}")
        return "\n".join(lines)

    key = parts[0].lower()
    validate = WORKSPACE_SETTINGS.get(key)
    if validate is None:
        known = ", ".join(sorted(WORKSPACE_SETTINGS))
        raise TaskValidationError(f"Unknown setting: {key}. Known settings: {known}")

    if len(parts) == 1:
        value = ctx.store.get_setting(ctx.workspace, key)
        return f"{key} = {value}" if value is not None else f"{key} is not set."

    if not ctx.is_privileged:
        raise TaskPermissionError("You do not have permission to change settings!")

    value = validate(parts[1].strip())
    ctx.store.set_setting(ctx.workspace, key, value)
    return f"Setting updated: {key} = {value}"


registry.register(
    "help", cmd_help, help_text="Show available commands.", aliases=["taskhelp", "taskshelp"]
)
registry.register(
    "add",
    cmd_add,
    usage="add <task name>",
    help_text="Add a new task (it becomes active if you have none).",
    aliases=["addtask"],
)
registry.register(
    "start",
    cmd_start,
    usage="start <task name or number>",
    help_text="Start an existing task by name or number, or add and start a new one.",
    aliases=["starttask"],
)
registry.register("current", cmd_current, help_text="Show your active task.", aliases=["task"])
registry.register(
    "done", cmd_done, help_text="Complete your active task and start the next one."
)
registry.register(
    "cancel",
    cmd_cancel,
    usage="cancel [task name or number]",
    help_text="Cancel your active task, or a task by name or number.",
)
registry.register(
    "advance", cmd_advance, help_text="Switch to your next task (wraps around).", aliases=["next"]
)
registry.register(
    "list-mine", cmd_list_mine, help_text="List your incomplete tasks.", aliases=["tasks"]
)
registry.register(
    "list-all",
    cmd_list_all,
    help_text="List incomplete tasks of everyone in this workspace.",
    aliases=["alltasks"],
)
registry.register(
    "list-completed",
    cmd_list_completed,
    help_text="List completed tasks of everyone in this workspace.",
    aliases=["completed"],
)
registry.register(
    "clear-all",
    cmd_clear_all,
    help_text="Remove all tasks in this workspace (moderators only).",
    aliases=["cleartasks"],
)
registry.register(
    "config",
    cmd_config,
    usage="config [key [value]]",
    help_text="Show workspace settings; moderators can change them.",
)


class TaskCommandProcessor:
    """
    Entry point for connectors.

    handle() parses "<prefix><keyword> <args>", dispatches through the registry
    and returns the reply, or None when the text is not a task command or the
    store failed (the failure is logged, the user gets no reply).
    """

    def __init__(
        self,
        store: TaskRepo,
        *,
        prefix: str = "!",
        name_scope: NameScope | str = NameScope.WORKSPACE,
        rng: random.Random | None = None,
        commands: CommandRegistry | None = None,
    ) -> None:
        self.store = store
        self.prefix = prefix
        self.name_scope = (
            name_scope if isinstance(name_scope, NameScope) else NameScope.from_config(name_scope)
        )
        self.rng = rng or random.Random()
        self.commands = commands or registry

    def parse(self, text: str) -> tuple[str, str] | None:
        text = (text or "").strip()
        if not text.startswith(self.prefix):
            return None

        parts = text[len(self.prefix):].split(maxsplit=1)
        if not parts:
            return None

        keyword = parts[0].lower()
        args = parts[1].strip() if len(parts) > 1 else ""
        return keyword, args

    def handle(
        self,
        workspace: str,
        owner: str,
        text: str,
        is_privileged: bool = False,
    ) -> str | None:
        parsed = self.parse(text)
        if parsed is None:
            return None

        keyword, args = parsed
        handler = self.commands.get(keyword)
        if handler is None:
            return None

        ctx = CommandContext(
            store=self.store,
            registry=self.commands,
            workspace=workspace,
            owner=owner,
            is_privileged=is_privileged,
            prefix=self.prefix,
            name_scope=self.name_scope,
            rng=self.rng,
        )

        try:
            _check_text(args)
            reply = handler(ctx, args)
        except TaskCommandError as e:
            reply = str(e)
        except StoreError:
            logger.exception(
                "Task command failed workspace=%s owner=%s text=%r", workspace, owner, text
            )
            return None

        logger.info("%s::%s: %s", workspace, owner, text)
        logger.info("Bot: %s", reply)
        return reply
