"""Compiler and story-runtime capability boundary.

The session never talks to a concrete ink engine. It consumes four small
protocols instead:

    Compiler         compile(source, include_resolver) -> CompiledStory
                     raises CompileError (IncludeLoadError for includes)
    IncludeResolver  resolve(name) -> Path, load(path) -> str
    CompiledStory    new_runtime() -> StoryRuntime
    StoryRuntime     start / continue_until_choice / current_choices /
                     choose / is_ended

A CompiledStory is immutable and may produce any number of independent
runtimes; replay and rewind rely on that to start over from a clean
instance instead of asking the engine to undo.

Production code uses InkCompiler from ink_preview.story together with
FileIncludeResolver. Tests may inject any object matching the protocols.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from ink_preview.errors import IncludeLoadError
from ink_preview.models import Choice, StoryOutput

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class StoryRuntime(Protocol):
    def start(self) -> None: ...

    def continue_until_choice(self) -> StoryOutput: ...

    def current_choices(self) -> list[Choice]: ...

    def choose(self, index: int) -> StoryOutput: ...

    def is_ended(self) -> bool: ...


class CompiledStory(Protocol):
    def new_runtime(self) -> StoryRuntime: ...


class IncludeResolver(Protocol):
    def resolve(self, name: str) -> Path: ...

    def load(self, path: Path) -> str: ...


class Compiler(Protocol):
    def compile(self, source: str, include_resolver: IncludeResolver) -> CompiledStory: ...


# ---------------------------------------------------------------------------
# FileIncludeResolver: INCLUDE directives relative to the document
# ---------------------------------------------------------------------------

class FileIncludeResolver:
    """Resolves `INCLUDE name` against the directory of the previewed file.

    "chapter2" and "chapter2.ink" both resolve to <base_dir>/chapter2.ink.

    Args:
        base_dir:  Directory of the document being previewed.
        extension: File extension of script files. Defaults to ".ink".
    """

    def __init__(self, base_dir: Path, extension: str = ".ink") -> None:
        self._base_dir = base_dir
        self._extension = extension

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def resolve(self, name: str) -> Path:
        clean = name.strip()
        if clean.lower().endswith(self._extension.lower()):
            clean = clean[: -len(self._extension)]
        path = (self._base_dir / f"{clean}{self._extension}").resolve()
        logger.debug("Resolving include %r -> %s", name, path)
        return path

    def load(self, path: Path) -> str:
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error("Failed to load included file %s: %s", path, e)
            raise IncludeLoadError(str(path), str(e)) from e
        logger.debug("Loaded include %s, length=%d", path, len(content))
        return content
