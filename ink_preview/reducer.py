"""Reducer: folds one action onto a state snapshot.

    apply(state, action, runtime) -> state'

Given a fixed runtime the function is pure: the same runtime position and
the same action always produce the same state. The runtime itself is
advanced as a side effect of the narrative actions:

    start               restart the runtime, continue to the first choice;
                        transcript and choices are replaced, metadata kept
    select_choice       choose and continue, append new lines and events;
                        an index the runtime does not offer appends one
                        invalid_choice error and leaves the runtime alone
    toggle_live_update  flip the flag
    record_errors       append errors
    record_events       append function events

`rewind` never reaches the reducer: it is a log operation owned by the
session controller.
"""

from __future__ import annotations

import logging

from ink_preview.errors import InvalidChoice
from ink_preview.models import (
    Action,
    RecordErrorsAction,
    RecordEventsAction,
    SelectChoiceAction,
    StartAction,
    State,
    StoryOutput,
    ToggleLiveUpdateAction,
)
from ink_preview.runtime import StoryRuntime

logger = logging.getLogger(__name__)


def is_choice_available(runtime: StoryRuntime, index: int) -> bool:
    return 0 <= index < len(runtime.current_choices())


def apply(state: State, action: Action, runtime: StoryRuntime | None) -> State:
    """Return the state that results from applying `action` to `state`."""
    if isinstance(action, StartAction):
        return _start(state, _require(runtime, action))

    if isinstance(action, SelectChoiceAction):
        try:
            return _select_choice(state, action.index, _require(runtime, action))
        except InvalidChoice as e:
            logger.warning("%s", e)
            return state.model_copy(update={"errors": [*state.errors, e.to_error_info()]})

    if isinstance(action, ToggleLiveUpdateAction):
        return state.model_copy(update={"live_update": action.enabled})

    if isinstance(action, RecordErrorsAction):
        return state.model_copy(update={"errors": [*state.errors, *action.errors]})

    if isinstance(action, RecordEventsAction):
        return state.model_copy(update={"events": [*state.events, *action.events]})

    raise ValueError(f"Action {action.type!r} cannot be reduced")


def _require(runtime: StoryRuntime | None, action: Action) -> StoryRuntime:
    if runtime is None:
        raise ValueError(f"Action {action.type!r} needs a loaded story")
    return runtime


def _start(state: State, runtime: StoryRuntime) -> State:
    runtime.start()
    output = runtime.continue_until_choice()
    return _advance(state.model_copy(update={"transcript": [], "choices": []}), output, runtime)


def _select_choice(state: State, index: int, runtime: StoryRuntime) -> State:
    available = len(runtime.current_choices())
    if not 0 <= index < available:
        raise InvalidChoice(index, available)
    output = runtime.choose(index)
    return _advance(state, output, runtime)


def _advance(state: State, output: StoryOutput, runtime: StoryRuntime) -> State:
    choices = runtime.current_choices()
    return state.model_copy(update={
        "transcript": [*state.transcript, *output.lines],
        "events": [*state.events, *output.events],
        "choices": choices,
        "can_continue": bool(choices),
        "ended": runtime.is_ended(),
    })
