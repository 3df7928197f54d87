# tests/test_matrix_connector.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from taskbot.connectors.matrix_connector import handle_room_message, is_privileged

from .fakes import FakePowerLevels, FakeReplySink

BOT = "@taskbot:example.org"
ROOM = "!room:example.org"


def _room(levels: dict[str, int] | None = None, room_id: str = ROOM) -> SimpleNamespace:
    return SimpleNamespace(
        room_id=room_id,
        display_name="Team",
        power_levels=FakePowerLevels(levels or {}),
    )


def _event(body: str, sender: str = "@alice:example.org", ts: int = 2_000) -> SimpleNamespace:
    return SimpleNamespace(sender=sender, body=body, server_timestamp=ts, event_id="$ev1")


async def _deliver(state, sink, room, event, *, allowed_rooms=None):
    return await handle_room_message(
        state,
        sink,
        room,
        event,
        own_user_id=BOT,
        startup_ts=1_000,
        allowed_rooms=allowed_rooms,
    )


def test_is_privileged() -> None:
    room = _room({"@mod:example.org": 50, "@user:example.org": 0})

    assert is_privileged(room, "@mod:example.org", admins=[], moderator_power_level=50)
    assert not is_privileged(room, "@user:example.org", admins=[], moderator_power_level=50)
    assert is_privileged(room, "@user:example.org", admins=["@user:example.org"], moderator_power_level=50)
    assert not is_privileged(SimpleNamespace(room_id=ROOM), "@mod:example.org", admins=[], moderator_power_level=50)


@pytest.mark.asyncio
async def test_command_reply_is_threaded_to_event(state) -> None:
    sink = FakeReplySink()

    reply = await _deliver(state, sink, _room(), _event("!add write report"))

    assert reply is not None and reply.startswith("Added your new task: write report")
    assert len(sink.sent) == 1
    sent = sink.sent[0]
    assert sent.room_id == ROOM
    assert sent.to_user_id == "@alice:example.org"
    assert sent.in_reply_to == "$ev1"
    assert state.task_store.get_active(ROOM, "@alice:example.org").name == "write report"


@pytest.mark.asyncio
async def test_ignored_messages(state) -> None:
    sink = FakeReplySink()

    assert await _deliver(state, sink, _room(), _event("just chatting")) is None
    assert await _deliver(state, sink, _room(), _event("!add old", ts=500)) is None
    assert await _deliver(state, sink, _room(), _event("!add mine", sender=BOT)) is None
    assert (
        await _deliver(state, sink, _room(room_id="!other:example.org"), _event("!add x"), allowed_rooms={ROOM})
        is None
    )

    assert sink.sent == []
    assert state.task_store.list_workspaces() == []


@pytest.mark.asyncio
async def test_clear_all_uses_room_power_levels(state) -> None:
    sink = FakeReplySink()
    room = _room({"@mod:example.org": 50})
    await _deliver(state, sink, room, _event("!add A"))

    denied = await _deliver(state, sink, room, _event("!clear-all"))
    assert denied == "You do not have permission to clear tasks!"
    assert len(state.task_store.list_tasks(ROOM)) == 1

    allowed = await _deliver(state, sink, room, _event("!clear-all", sender="@mod:example.org"))
    assert allowed == "All tasks have been cleared!"
    assert state.task_store.list_tasks(ROOM) == []
