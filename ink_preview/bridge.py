"""Message bridge between a session and its display surface.

Protocol (transport independent, every message is {"command", "payload"}):

    inbound   ready                      surface finished initializing
              action      {<action>}     a serialized user action
              jumpToLine  {line|text}    source navigation request
    outbound  updateState {state}        the full state, on every change
              revealPosition {line, character}
                                         answer to a successful jumpToLine

Startup ordering: the first initialize_story() suspends on a one-shot gate
until `ready` arrives, so `start` is never dispatched into a surface that
cannot render it yet. A `ready` that arrives early is remembered, later ones
are no-ops. If `ready` never arrives, initialization stays pending.

While a recompile is in flight (see holding()) inbound actions are queued
and applied in arrival order once the new story has been swapped in.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from pydantic import BaseModel, ValidationError

from ink_preview.errors import UnknownAction
from ink_preview.models import (
    INBOUND_ACTION_TYPES,
    Action,
    ErrorInfo,
    FunctionEvent,
    RecordErrorsAction,
    RecordEventsAction,
    StartAction,
    State,
    parse_action,
)
from ink_preview.runtime import CompiledStory
from ink_preview.session import SessionController

logger = logging.getLogger(__name__)

JumpCallback = Callable[[dict[str, Any]], None]


class Channel(Protocol):
    """Outbound half of the display surface. Delivery is fire-and-forget."""

    def post_message(self, message: dict[str, Any]) -> None: ...


class QueueChannel:
    """Buffers outbound messages for an async transport to drain.

    The transport loops on get() and writes each message to the wire;
    close() wakes it up with None.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

    def post_message(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    async def get(self) -> dict[str, Any] | None:
        return await self._queue.get()

    def close(self) -> None:
        self._queue.put_nowait(None)


class ReadyGate:
    """One-shot gate: resolve() once, wait() as often as needed."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def resolved(self) -> bool:
        return self._event.is_set()

    def resolve(self) -> bool:
        """Open the gate. Returns False if it was already open."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()


class InboundMessage(BaseModel):
    command: str
    payload: Any = None


def decode_action(payload: Any) -> Action:
    """Turn an inbound action payload into an Action or raise UnknownAction."""
    if not isinstance(payload, dict):
        raise UnknownAction(type(payload).__name__)
    action_type = payload.get("type")
    if action_type not in INBOUND_ACTION_TYPES:
        raise UnknownAction(action_type)
    try:
        return parse_action(payload)
    except ValidationError as e:
        raise UnknownAction(f"{action_type} (invalid payload: {e.error_count()} error(s))") from e


class PreviewBridge:
    """Coordinates one SessionController with one display surface."""

    def __init__(self, session: SessionController, channel: Channel | None = None) -> None:
        self._session = session
        self._channel = channel
        self._ready = ReadyGate()
        self._initialized = False
        self._held = 0
        self._queued: list[Action] = []
        self._on_jump: JumpCallback | None = None
        self._session.set_on_state_change(self._push_state)

    @property
    def session(self) -> SessionController:
        return self._session

    @property
    def ready(self) -> ReadyGate:
        return self._ready

    @property
    def has_story(self) -> bool:
        return self._session.story is not None

    def attach_channel(self, channel: Channel | None) -> None:
        self._channel = channel
        if channel is not None:
            self._push_state(self._session.get_state())

    def set_on_jump(self, callback: JumpCallback | None) -> None:
        self._on_jump = callback

    # ------------------------------------------------------------------
    # Story lifecycle
    # ------------------------------------------------------------------

    async def initialize_story(self, story: CompiledStory) -> None:
        """Start a new session for `story` once the surface is ready."""
        self._session.set_story(story)
        self._session.reset()

        if not self._initialized:
            self._initialized = True
            if not self._ready.resolved:
                logger.debug("Waiting for display surface to become ready")
            await self._ready.wait()

        self._session.dispatch(StartAction())

    def refresh_story(self, story: CompiledStory) -> None:
        """Swap in an updated story and replay the session onto it."""
        self._session.replace(story)

    def show_errors(self, errors: list[ErrorInfo]) -> None:
        self._session.dispatch(RecordErrorsAction(errors=errors))

    def add_function_event(self, event: FunctionEvent) -> None:
        self._session.dispatch(RecordEventsAction(events=[event]))

    def get_state(self) -> State:
        return self._session.get_state()

    @contextmanager
    def holding(self) -> Iterator[None]:
        """Queue inbound actions until the block exits."""
        self._held += 1
        try:
            yield
        finally:
            self._held -= 1
            if not self._held:
                self._flush()

    def dispose(self) -> None:
        logger.debug("Disposing bridge")
        self._session.dispose()
        self._queued.clear()
        self._channel = None
        self._on_jump = None
        # Let a pending initialize_story() run into the disposed session.
        self._ready.resolve()

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, data: Any) -> None:
        try:
            message = InboundMessage.model_validate(data)
        except ValidationError:
            logger.warning("Malformed message from display surface: %r", data)
            self._record(UnknownAction(data))
            return

        logger.debug("Received message: %s %r", message.command, message.payload)

        if message.command == "ready":
            if self._ready.resolve():
                logger.debug("Display surface ready")
            else:
                logger.debug("Duplicate ready ignored")
        elif message.command == "action":
            self._handle_action(message.payload)
        elif message.command == "jumpToLine":
            if self._on_jump is not None and isinstance(message.payload, dict):
                self._on_jump(message.payload)
            else:
                logger.warning("Jump request ignored: %r", message.payload)
        else:
            logger.warning("Unknown command from display surface: %s", message.command)

    def _handle_action(self, payload: Any) -> None:
        try:
            action = decode_action(payload)
        except UnknownAction as e:
            logger.warning("%s", e)
            self._record(e)
            return

        if self._held:
            logger.debug("Recompile in flight, queueing %s", action.type)
            self._queued.append(action)
        else:
            self._session.dispatch(action)

    def _record(self, error: UnknownAction) -> None:
        self._session.dispatch(RecordErrorsAction(errors=[error.to_error_info()]))

    def _flush(self) -> None:
        queued, self._queued = self._queued, []
        for action in queued:
            self._session.dispatch(action)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def post_message(self, command: str, payload: dict[str, Any]) -> None:
        channel = self._channel
        if channel is None:
            return
        try:
            channel.post_message({"command": command, "payload": payload})
        except Exception:
            logger.exception("Failed to post %s to display surface", command)

    def _push_state(self, state: State) -> None:
        self.post_message("updateState", {"state": state.model_dump(mode="json")})
