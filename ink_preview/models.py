"""Core session models.

The reducer, the session controller and the message bridge all operate on
these types. Pydantic is used for validation and serialisation at every data
boundary: actions arrive as JSON from the display surface and the state
leaves as JSON on every push.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

ErrorSeverity = Literal["error", "warning", "info"]

ErrorKind = Literal[
    "compile",
    "include_load",
    "invalid_choice",
    "unknown_action",
    "runtime",
]


class ErrorInfo(BaseModel):
    """One entry in the session's accumulated error list."""

    model_config = ConfigDict(frozen=True)

    message: str
    severity: ErrorSeverity = "error"
    kind: ErrorKind = "runtime"


class FunctionEvent(BaseModel):
    """An external function call made by the running story."""

    model_config = ConfigDict(frozen=True)

    function_name: str
    args: list[Any] = Field(default_factory=list)


class StoryLine(BaseModel):
    """A single transcript entry: one line of story text and its tags."""

    model_config = ConfigDict(frozen=True)

    text: str
    tags: list[str] = Field(default_factory=list)


class Choice(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    text: str


class StoryOutput(BaseModel):
    """What a runtime produced while advancing to the next choice point."""

    lines: list[StoryLine] = Field(default_factory=list)
    events: list[FunctionEvent] = Field(default_factory=list)


class State(BaseModel):
    """The derived preview state pushed to the display surface."""

    model_config = ConfigDict(frozen=True)

    transcript: list[StoryLine] = Field(default_factory=list)
    choices: list[Choice] = Field(default_factory=list)
    errors: list[ErrorInfo] = Field(default_factory=list)
    events: list[FunctionEvent] = Field(default_factory=list)
    live_update: bool = True
    can_continue: bool = False  # the story is waiting on a choice
    ended: bool = False


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class StartAction(_Action):
    type: Literal["start"] = "start"


class SelectChoiceAction(_Action):
    type: Literal["select_choice"] = "select_choice"
    index: int = Field(ge=0)


class RewindAction(_Action):
    type: Literal["rewind"] = "rewind"


class ToggleLiveUpdateAction(_Action):
    type: Literal["toggle_live_update"] = "toggle_live_update"
    enabled: bool


class RecordErrorsAction(_Action):
    type: Literal["record_errors"] = "record_errors"
    errors: list[ErrorInfo]


class RecordEventsAction(_Action):
    type: Literal["record_events"] = "record_events"
    events: list[FunctionEvent]


Action = Annotated[
    Union[
        StartAction,
        SelectChoiceAction,
        RewindAction,
        ToggleLiveUpdateAction,
        RecordErrorsAction,
        RecordEventsAction,
    ],
    Field(discriminator="type"),
]

ActionLog = list[Action]

# Narrative actions move the runtime; everything else only annotates state.
NARRATIVE_ACTION_TYPES = frozenset({"start", "select_choice"})

# The subset the display surface is allowed to send.
INBOUND_ACTION_TYPES = frozenset({"start", "select_choice", "rewind", "toggle_live_update"})

action_adapter: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(data: Any) -> Action:
    """Validate a serialized action. Raises pydantic.ValidationError."""
    return action_adapter.validate_python(data)
