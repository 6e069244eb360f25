"""Recompile coordinator: turns script edits into engine swaps.

on_source_changed(source, restart) flow:
  1. Hold inbound user actions on the bridge.
  2. Compile the source in a worker thread.
  3. On failure: leave the session alone and record the compile errors, so
     a broken script never blanks the preview.
     On success: initialize the session if no story was ever loaded or a
     restart was asked for (a different document), otherwise replace the
     story and replay the log onto it.
  4. Release the hold; queued user actions apply in arrival order.

At most one recompile is in flight. Sources that arrive meanwhile are
coalesced: only the most recent one is compiled once the current run is
done. A restart request survives coalescing and failed compiles until a
compile succeeds.
"""

from __future__ import annotations

import asyncio
import logging

from ink_preview.bridge import PreviewBridge
from ink_preview.errors import CompileError
from ink_preview.runtime import CompiledStory, Compiler, IncludeResolver

logger = logging.getLogger(__name__)


class RecompileCoordinator:
    def __init__(
        self,
        bridge: PreviewBridge,
        compiler: Compiler,
        include_resolver: IncludeResolver,
    ) -> None:
        self._bridge = bridge
        self._compiler = compiler
        self._include_resolver = include_resolver
        self._pending: tuple[str, bool] | None = None
        self._needs_restart = False
        self._task: asyncio.Task[None] | None = None
        self._disposed = False

    @property
    def include_resolver(self) -> IncludeResolver:
        return self._include_resolver

    @include_resolver.setter
    def include_resolver(self, resolver: IncludeResolver) -> None:
        self._include_resolver = resolver

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_source_changed(self, source: str, restart: bool = False) -> None:
        """Schedule a recompile of `source`. Must be called on the event loop.

        With `restart` the session starts over on success instead of
        replaying its log onto the new story.
        """
        if self._disposed:
            return
        if self.busy:
            logger.debug("Recompile in flight, coalescing new source")
        if self._pending is not None:
            restart = restart or self._pending[1]
        self._pending = (source, restart)
        if not self.busy:
            self._task = asyncio.get_running_loop().create_task(self._drain())
            self._task.add_done_callback(_log_failure)

    async def wait_idle(self) -> None:
        """Wait until every scheduled recompile has finished."""
        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    def dispose(self) -> None:
        self._disposed = True
        self._pending = None
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _drain(self) -> None:
        while self._pending is not None and not self._disposed:
            (source, restart), self._pending = self._pending, None
            await self._recompile(source, restart)

    async def _recompile(self, source: str, restart: bool) -> None:
        if restart:
            self._needs_restart = True
        with self._bridge.holding():
            try:
                story = await asyncio.to_thread(
                    self._compiler.compile, source, self._include_resolver
                )
            except CompileError as e:
                logger.error("Compilation failed with %d error(s)", len(e.errors))
                self._bridge.show_errors(e.to_error_infos())
                return

            if self._disposed:
                return
            await self._swap(story)

    async def _swap(self, story: CompiledStory) -> None:
        if self._bridge.has_story and not self._needs_restart:
            self._bridge.refresh_story(story)
            return
        if self._needs_restart and self._bridge.has_story:
            logger.info("New document, restarting session")
        else:
            logger.info("First successful compile, starting session")
        self._needs_restart = False
        await self._bridge.initialize_story(story)


def _log_failure(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Recompile failed unexpectedly", exc_info=exc)
