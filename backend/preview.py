"""The active preview panel.

There is one preview per server, like one preview panel per editor window.
get_manager() returns the live PreviewManager or creates a fresh one from
the stored settings once the previous one has been disposed (its display
surface disconnected).
"""

import logging

from backend import storage
from ink_preview.manager import PreviewManager

logger = logging.getLogger(__name__)

_manager: PreviewManager | None = None


def get_manager() -> PreviewManager:
    global _manager
    if _manager is None or not _manager.is_active():
        config = storage.get_config()
        _manager = PreviewManager(
            live_update_default=config["live_update"],
            include_extension=config["include_extension"],
            title_suffix=config["title_suffix"],
        )
        logger.debug("Created preview manager (live_update=%s)", config["live_update"])
    return _manager


def current_manager() -> PreviewManager | None:
    """The active manager, or None if no preview is open."""
    if _manager is None or not _manager.is_active():
        return None
    return _manager


def set_manager(manager: PreviewManager | None) -> None:
    """Replace the active manager (used in tests)."""
    global _manager
    _manager = manager


def close_manager() -> None:
    global _manager
    if _manager is not None:
        _manager.dispose()
    _manager = None
