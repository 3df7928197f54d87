# src/taskbot/connectors/matrix_connector.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

from nio import AsyncClient, MatrixRoom, RoomMessageText, exceptions

from ..core.ports import ReplySink
from ..core.state import AppState
from ..tasks.task_sweeper import run_retention_sweeper
from .matrix_client import create_matrix_client

logger = logging.getLogger(__name__)


def _ms_now() -> int:
    return int(time.time() * 1000)


def _room_allowlist(settings_rooms: list[str]) -> set[str] | None:
    rooms = [r.strip() for r in (settings_rooms or []) if str(r).strip()]
    return set(rooms) if rooms else None


def is_privileged(room: Any, sender: str, *, admins: list[str], moderator_power_level: int) -> bool:
    """
    Privileged = listed in TASKBOT_ADMINS, or room power level >= moderator_power_level
    (50 is Matrix's conventional "moderator").
    """
    if sender in (admins or []):
        return True
    power_levels = getattr(room, "power_levels", None)
    if power_levels is None:
        return False
    try:
        level = int(power_levels.get_user_level(sender))
    except Exception:
        logger.debug("Power level lookup failed room=%s sender=%s", getattr(room, "room_id", "?"), sender, exc_info=True)
        return False
    return level >= int(moderator_power_level)


class MatrixReplySink(ReplySink):
    """ReplySink over a nio client; replies are threaded to the command event when known."""

    def __init__(self, client: AsyncClient, *, default_room_id: str | None = None) -> None:
        self._client = client
        self._default_room_id = default_room_id

    async def send_text(
        self,
        *,
        text: str,
        room_id: str | None = None,
        to_user_id: str | None = None,
        in_reply_to: str | None = None,
    ) -> None:
        room = room_id or self._default_room_id
        if not room:
            logger.warning("Reply dropped: no room_id (to_user_id=%s)", to_user_id)
            return

        content: dict[str, Any] = {"msgtype": "m.text", "body": text}
        if in_reply_to:
            content["m.relates_to"] = {"m.in_reply_to": {"event_id": in_reply_to}}

        await self._client.room_send(
            room_id=room,
            message_type="m.room.message",
            content=content,
            ignore_unverified_devices=True,
        )


async def handle_room_message(
    state: AppState,
    sink: ReplySink,
    room: Any,
    event: Any,
    *,
    own_user_id: str | None,
    startup_ts: int,
    allowed_rooms: set[str] | None,
) -> str | None:
    """
    Route one room message through the task command processor.

    workspace = room id, owner = sender MXID. Returns the reply that was sent
    (None when the message was ignored or produced no reply).
    """
    # 1) Ignore messages sent before bot startup.
    ts = getattr(event, "server_timestamp", None)
    if ts is not None and ts <= startup_ts:
        return None

    # 2) Ignore own messages.
    if event.sender == own_user_id:
        return None

    # 3) Room allowlist filter.
    if allowed_rooms is not None and room.room_id not in allowed_rooms:
        return None

    body = (event.body or "").strip()
    if not body:
        return None

    settings = state.settings
    privileged = is_privileged(
        room,
        event.sender,
        admins=list(getattr(settings, "admins", []) or []),
        moderator_power_level=int(getattr(settings, "moderator_power_level", 50)),
    )

    try:
        # Store calls are blocking SQLite; keep the event loop free.
        reply = await asyncio.to_thread(
            state.processor.handle, room.room_id, event.sender, body, privileged
        )
    except Exception:
        logger.exception("Command handler crashed.")
        return None

    if not reply:
        return None

    try:
        await sink.send_text(
            text=reply,
            room_id=room.room_id,
            to_user_id=event.sender,
            in_reply_to=getattr(event, "event_id", None),
        )
    except exceptions.OlmUnverifiedDeviceError:
        logger.warning("Cannot send command reply: unverified device.")
        return None
    except Exception:
        logger.exception("Failed to send command reply.")
        return None

    logger.info("Replied in %s (%s).", getattr(room, "display_name", room.room_id), room.room_id)
    return reply


async def _run_matrix_bot(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Matrix connector (async):

    init -> retention sweeper -> callbacks -> sync loop

    Shutdown model:
    - main thread sets stop_event via loop.call_soon_threadsafe(stop_event.set)
    - we run a manual sync loop so we can exit promptly.
    """
    settings = state.settings

    startup_ts = _ms_now()
    allowed_rooms = _room_allowlist(getattr(settings, "matrix_rooms", []) or [])
    logger.info("Matrix allowed_rooms=%s", allowed_rooms if allowed_rooms is not None else "ALL")

    client = await create_matrix_client(settings)
    if client is None:
        logger.error("Matrix client creation failed; connector will stop.")
        return

    logger.info(
        "Matrix client started (user=%s, homeserver=%s).",
        client.user_id,
        getattr(settings, "matrix_homeserver", ""),
    )

    sink = MatrixReplySink(client)

    sweeper_task = asyncio.create_task(
        run_retention_sweeper(
            state.task_store,
            default_hours=int(getattr(settings, "retention_hours", 0)),
            interval_seconds=float(getattr(settings, "retention_interval_seconds", 3600.0)),
        )
    )

    async def message_callback(room: MatrixRoom, event: RoomMessageText) -> None:
        await handle_room_message(
            state,
            sink,
            room,
            event,
            own_user_id=client.user_id,
            startup_ts=startup_ts,
            allowed_rooms=allowed_rooms,
        )

    client.add_event_callback(message_callback, RoomMessageText)

    try:
        logger.info("Matrix initial sync...")
        await client.sync(timeout=30000, full_state=True)
        logger.info("Matrix initial sync done. Joined rooms: %d", len(client.rooms))

        while not stop_event.is_set():
            await client.sync(timeout=30000, full_state=False)

    except asyncio.CancelledError:
        logger.info("Matrix connector cancelled.")
    except Exception:
        logger.exception("Matrix connector crashed.")
    finally:
        sweeper_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper_task

        with contextlib.suppress(Exception):
            await client.close()

        logger.info("Matrix connector stopped.")


@dataclass
class MatrixBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal Matrix stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_matrix_in_background(state: AppState) -> MatrixBackgroundRunner | None:
    """
    Start the Matrix connector in a background thread with its own event loop,
    so the blocking console REPL can run in parallel.
    """
    if not getattr(state.settings, "matrix_enabled", False):
        logger.info("Matrix connector disabled, not starting.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_matrix_bot(state, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="matrix-connector", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Matrix thread did not initialize properly.")
        return None

    logger.info("Matrix background thread started.")
    return MatrixBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
