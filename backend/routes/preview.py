"""Preview endpoints and the display-surface WebSocket."""

import asyncio
import json
import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from backend.preview import current_manager, get_manager
from ink_preview.bridge import QueueChannel
from ink_preview.errors import TextNotFound
from ink_preview.manager import PreviewManager

from .models import DefinitionBody, JumpBody, PreviewBody

logger = logging.getLogger(__name__)

router = APIRouter()


def _active() -> PreviewManager:
    manager = current_manager()
    if manager is None:
        raise HTTPException(404, "No active preview")
    return manager


def _read_source(body: PreviewBody) -> tuple[Path, str]:
    path = Path(body.path)
    if body.source is not None:
        return path, body.source
    try:
        return path, path.read_text(encoding="utf-8")
    except OSError:
        raise HTTPException(404, "Document not found")


@router.post("/preview")
async def preview(body: PreviewBody, wait: bool = False):
    """Preview a document.

    `wait` blocks until the compile has been applied. Before a display surface
    has sent `ready` the first compile is parked, so there is nothing to wait on.
    """
    path, source = _read_source(body)
    manager = get_manager()
    scheduled = manager.preview(path, source)
    if wait and manager.bridge.ready.resolved:
        await manager.wait_idle()
    return {"scheduled": scheduled, "title": manager.title}


@router.post("/preview/saved")
async def document_saved(body: PreviewBody, wait: bool = False):
    """Save notification; refreshes the preview when live update is on."""
    manager = current_manager()
    if manager is None:
        return {"scheduled": False}
    path, source = _read_source(body)
    scheduled = manager.document_saved(path, source)
    if wait and manager.bridge.ready.resolved:
        await manager.wait_idle()
    return {"scheduled": scheduled}


@router.get("/preview/state")
async def get_state():
    """Current preview state (same payload as the updateState push)."""
    return _active().bridge.get_state()


@router.post("/preview/actions")
async def post_action(body: dict):
    """Send one action as if it came from the display surface."""
    manager = _active()
    manager.bridge.handle_message({"command": "action", "payload": body})
    return manager.bridge.get_state()


@router.get("/preview/outline")
async def get_outline():
    """Knots, stitches and choices of the previewed document."""
    return _active().outline()


@router.post("/preview/jump")
async def jump(body: JumpBody):
    """Resolve a line number or transcript text to a document position."""
    manager = _active()
    try:
        return manager.jump(line=body.line, text=body.text)
    except TextNotFound as e:
        raise HTTPException(404, str(e))
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/preview/definition")
async def definition(body: DefinitionBody):
    """Go to the knot or stitch a divert under the cursor points at."""
    position = _active().definition(body.line, body.character)
    if position is None:
        raise HTTPException(404, "No definition found")
    return position


@router.websocket("/preview/ws")
async def preview_socket(websocket: WebSocket):
    """Display surface: inbound ready/action/jumpToLine, outbound updateState.

    Closing the socket disposes the preview; the next connection starts a
    new one.
    """
    await websocket.accept()
    manager = get_manager()
    channel = QueueChannel()
    manager.bridge.attach_channel(channel)
    sender = asyncio.create_task(_pump(websocket, channel))
    logger.info("Display surface connected")

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                data = raw
            manager.bridge.handle_message(data)
    except WebSocketDisconnect:
        logger.info("Display surface disconnected")
    except Exception:
        logger.exception("Preview session failed")
        await websocket.close(code=1011)
    finally:
        channel.close()
        manager.dispose()
        await sender


async def _pump(websocket: WebSocket, channel: QueueChannel) -> None:
    while True:
        message = await channel.get()
        if message is None:
            return
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Dropping %s, socket closed", message.get("command"))
            return
