"""Preview error taxonomy.

Every condition here is recoverable: the session captures it into its error
list and surfaces it through the normal state push. Only unexpected
exceptions from a story runtime are allowed to escape a dispatch.

    PreviewError
      CompileError        script cannot produce a runtime
        IncludeLoadError  an INCLUDE could not be read (fatal at compile time)
      InvalidChoice       a choice index the story does not currently offer
      UnknownAction       malformed or unsupported inbound action
      TextNotFound        source navigation could not locate the text
"""

from __future__ import annotations

from ink_preview.models import ErrorInfo, ErrorKind


class PreviewError(Exception):
    """Base class for recoverable preview conditions."""

    kind: ErrorKind = "runtime"

    def to_error_info(self) -> ErrorInfo:
        return ErrorInfo(message=str(self), kind=self.kind)


class CompileError(PreviewError):
    """Raised by a compiler when the script cannot be turned into a story.

    `errors` holds one message per problem, in source order.
    """

    kind: ErrorKind = "compile"

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors) or ["Unknown compilation error"]
        super().__init__("; ".join(self.errors))

    def to_error_infos(self) -> list[ErrorInfo]:
        return [ErrorInfo(message=msg, kind=self.kind) for msg in self.errors]


class IncludeLoadError(CompileError):
    """An included file could not be loaded."""

    kind: ErrorKind = "include_load"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__([f"Failed to load included file: {path}\n{reason}"])


class InvalidChoice(PreviewError):
    kind: ErrorKind = "invalid_choice"

    def __init__(self, index: int, available: int) -> None:
        self.index = index
        self.available = available
        super().__init__(
            f"Choice {index} is not available (the story offers {available} choice(s))"
        )


class UnknownAction(PreviewError):
    kind: ErrorKind = "unknown_action"

    def __init__(self, action_type: object) -> None:
        self.action_type = action_type
        super().__init__(f"Unknown action type: {action_type}")


class TextNotFound(PreviewError):
    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Text not found in document: {text}")
