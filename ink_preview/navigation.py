"""Source navigation: map a transcript entry back to a document position."""

from __future__ import annotations

import logging

from ink_preview.errors import TextNotFound
from ink_preview.outline import Position

logger = logging.getLogger(__name__)


def jump_to(document_text: str, line: int | None = None, search: str | None = None) -> Position:
    """Resolve a jump request to the start of a line.

    An explicit `line` wins. Otherwise the trimmed `search` text is located
    in the document and the start of its line returned. Raises TextNotFound
    when the text does not occur, ValueError when neither is given.
    """
    if line is not None:
        last = max(document_text.count("\n"), 0)
        return Position(line=min(max(line, 0), last))

    if not search or not search.strip():
        raise ValueError("jump_to needs a line or a search text")

    needle = search.strip()
    index = document_text.find(needle)
    if index == -1:
        logger.warning("Text not found in document: %r", needle)
        raise TextNotFound(needle)
    return Position(line=document_text.count("\n", 0, index))
