"""FastMCP server exposing the active preview as MCP tools.

Tools:
  - preview_state()        — current transcript, choices, errors, events
  - select_choice(index)   — pick a choice, as if clicked in the preview
  - rewind_story()         — undo the last choice

Actions go through the same bridge as the display surface, so they are
queued during a recompile and recorded as errors when invalid.

create_app() mounts the server at /mcp (SSE transport), so the tools act on
the same process-wide preview as the HTTP and WebSocket endpoints.
"""

from typing import Any

from mcp.server.fastmcp import FastMCP

from backend.preview import current_manager

mcp = FastMCP("ink-preview")

_NO_PREVIEW = {"error": "No active preview"}


def _send(payload: dict[str, Any]) -> dict:
    manager = current_manager()
    if manager is None:
        return _NO_PREVIEW
    manager.bridge.handle_message({"command": "action", "payload": payload})
    return manager.bridge.get_state().model_dump(mode="json")


@mcp.tool()
def preview_state() -> dict:
    """Return the state of the active preview."""
    manager = current_manager()
    if manager is None:
        return _NO_PREVIEW
    return manager.bridge.get_state().model_dump(mode="json")


@mcp.tool()
def select_choice(index: int) -> dict:
    """Select the choice at `index` (0-based) and return the new state."""
    return _send({"type": "select_choice", "index": index})


@mcp.tool()
def rewind_story() -> dict:
    """Undo the most recent choice and return the new state."""
    return _send({"type": "rewind"})
