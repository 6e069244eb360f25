"""Preview manager: one preview panel and the document it shows.

Wires a SessionController, a PreviewBridge and a RecompileCoordinator
together and decides when a document change reaches the coordinator:

    preview(path, source)         explicit request, always honoured unless
                                  the same document is already shown
    document_saved(path, source)  live update, honoured only while the
                                  session's live-update flag is on

INCLUDE directives resolve relative to the previewed document's directory.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ink_preview.bridge import Channel, PreviewBridge
from ink_preview.errors import TextNotFound
from ink_preview.navigation import jump_to
from ink_preview.outline import Outline, Position, find_definition, parse_outline
from ink_preview.recompile import RecompileCoordinator
from ink_preview.runtime import Compiler, FileIncludeResolver
from ink_preview.session import SessionController
from ink_preview.story import InkCompiler

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Ink Preview"


class PreviewManager:
    """Owns one preview session and the document feeding it.

    Args:
        compiler:            Compiler capability. Defaults to InkCompiler.
        channel:             Outbound half of the display surface, if already
                             connected.
        live_update_default: Whether saves refresh the preview initially.
        include_extension:   Extension appended to INCLUDE names.
        title_suffix:        Appended to the file name to form the title.
    """

    def __init__(
        self,
        compiler: Compiler | None = None,
        channel: Channel | None = None,
        live_update_default: bool = True,
        include_extension: str = ".ink",
        title_suffix: str = " (Preview)",
    ) -> None:
        self._session = SessionController(live_update_default=live_update_default)
        self._bridge = PreviewBridge(self._session, channel)
        self._bridge.set_on_jump(self._handle_jump)
        self._include_extension = include_extension
        self._title_suffix = title_suffix
        self._coordinator = RecompileCoordinator(
            self._bridge,
            compiler or InkCompiler(),
            FileIncludeResolver(Path.cwd(), include_extension),
        )
        self._path: Path | None = None
        self._source: str | None = None
        self._title = DEFAULT_TITLE
        self._disposed = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def bridge(self) -> PreviewBridge:
        return self._bridge

    @property
    def session(self) -> SessionController:
        return self._session

    @property
    def coordinator(self) -> RecompileCoordinator:
        return self._coordinator

    @property
    def title(self) -> str:
        return self._title

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def document_text(self) -> str | None:
        return self._source

    def is_active(self) -> bool:
        return not self._disposed

    def is_live_update_enabled(self) -> bool:
        return self._session.get_state().live_update

    # ------------------------------------------------------------------
    # Document changes
    # ------------------------------------------------------------------

    def preview(self, path: Path, source: str) -> bool:
        """Preview `source` as the content of `path`.

        Returns False when nothing was scheduled (disposed, or the same
        document content is already shown). A different path starts a new
        session; the same path replays the current one. Must be called on
        the event loop.
        """
        if self._disposed:
            return False
        if self._path == path and self._source == source:
            logger.debug("Preview of %s is already up to date", path)
            return False

        restart = self._path != path
        self._path = path
        self._source = source
        self._title = f"{path.name}{self._title_suffix}"
        self._coordinator.include_resolver = FileIncludeResolver(path.parent, self._include_extension)

        logger.info("Compiling story %s, content length=%d", path, len(source))
        self._coordinator.on_source_changed(source, restart=restart)
        return True

    def document_saved(self, path: Path, source: str) -> bool:
        if not self.is_active():
            return False
        if not self.is_live_update_enabled():
            logger.debug("Live update disabled, ignoring save of %s", path)
            return False
        logger.info("Live update triggered for %s", path)
        return self.preview(path, source)

    async def wait_idle(self) -> None:
        await self._coordinator.wait_idle()

    # ------------------------------------------------------------------
    # Navigation and outline
    # ------------------------------------------------------------------

    def outline(self) -> Outline:
        return parse_outline(self._source or "")

    def definition(self, line: int, character: int) -> Position | None:
        return find_definition(self._source or "", line, character)

    def jump(self, line: int | None = None, text: str | None = None) -> Position:
        """Raises TextNotFound or ValueError; see navigation.jump_to."""
        if self._source is None:
            raise ValueError("No document is being previewed")
        return jump_to(self._source, line=line, search=text)

    def _handle_jump(self, payload: dict[str, Any]) -> None:
        try:
            position = self.jump(line=payload.get("line"), text=payload.get("text"))
        except TextNotFound:
            return
        except ValueError as e:
            logger.warning("Jump request ignored: %s", e)
            return
        self._bridge.post_message("revealPosition", position.model_dump())

    def dispose(self) -> None:
        logger.debug("Disposing preview manager")
        self._disposed = True
        self._coordinator.dispose()
        self._bridge.dispose()
