"""Session controller: owns the action log, the state, and the runtime.

The controller is the only place that holds a runtime handle. The handle is
never shared and is replaced wholesale: on rewind and replay a fresh runtime
is created from the current compiled story, on recompile a new compiled
story is swapped in.

Every public operation is synchronous and runs to completion, so on a
single event loop two dispatches can never interleave against the same
runtime.

Replay and divergence
---------------------
replay() starts from an empty state and folds the whole log onto a fresh
runtime. When a logged select_choice is no longer offered by the story (the
script changed under it), the reducer records an invalid_choice error and
replay stops applying further choices until a later start returns the story
to a known position. Non-choice actions keep applying so accumulated
metadata survives.

The log itself is append-only: replay never rewrites it, so restoring the
script on the next save brings the whole playthrough back. Only user
decisions cut it. rewind() truncates as usual, and a select_choice made while
the session is diverged branches off the reachable position: the stale
choices from the divergence point on are dropped and the divergent one is
replaced by a record_errors action carrying its error. A live select_choice
the story does not offer is logged the same way, as its error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from ink_preview import reducer
from ink_preview.models import (
    NARRATIVE_ACTION_TYPES,
    Action,
    ActionLog,
    ErrorInfo,
    RecordErrorsAction,
    RewindAction,
    SelectChoiceAction,
    StartAction,
    State,
)
from ink_preview.runtime import CompiledStory, StoryRuntime

logger = logging.getLogger(__name__)

StateCallback = Callable[[State], None]


class SessionController:
    """Event-sourced preview session.

    Args:
        live_update_default: live-update flag of an empty state.
    """

    def __init__(self, live_update_default: bool = True) -> None:
        self._live_update_default = live_update_default
        self._story: CompiledStory | None = None
        self._runtime: StoryRuntime | None = None
        self._log: ActionLog = []
        self._state = self._empty_state()
        self._on_state_change: StateCallback | None = None
        self._disposed = False
        # Log index of the choice replay could not follow, and its error.
        self._diverged_at: int | None = None
        self._divergence_errors: list[ErrorInfo] = []

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def story(self) -> CompiledStory | None:
        return self._story

    @property
    def log(self) -> list[Action]:
        """A copy of the action log, oldest first."""
        return list(self._log)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def get_state(self) -> State:
        return self._state

    def set_on_state_change(self, callback: StateCallback | None) -> None:
        self._on_state_change = callback

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def set_story(self, story: CompiledStory) -> None:
        """Load a compiled story without touching log or state."""
        if self._disposed:
            return
        self._story = story
        self._runtime = story.new_runtime()

    def dispatch(self, action: Action) -> None:
        if self._disposed:
            logger.debug("Ignoring %s on disposed session", action.type)
            return
        if isinstance(action, RewindAction):
            self.rewind()
            return
        if action.type in NARRATIVE_ACTION_TYPES and self._runtime is None:
            logger.warning("Ignoring %s: no story loaded", action.type)
            return

        logger.debug("Dispatching %s", action.type)
        if isinstance(action, SelectChoiceAction):
            self._settle_divergence()
        elif isinstance(action, StartAction):
            self._diverged_at = None
        before = len(self._state.errors)
        valid = not isinstance(action, SelectChoiceAction) or reducer.is_choice_available(
            self._runtime, action.index
        )
        self._state = reducer.apply(self._state, action, self._runtime)
        if valid:
            self._log.append(action)
        else:
            self._log.append(RecordErrorsAction(errors=self._state.errors[before:]))
        self._notify()

    def rewind(self) -> None:
        """Drop the last choice and everything after it, then replay."""
        if self._disposed:
            return
        self._settle_divergence()
        last = _last_choice_index(self._log)
        if last is None:
            logger.debug("Rewind: no choice to undo")
            self._notify()
            return
        logger.debug("Rewind: truncating log from %d to %d action(s)", len(self._log), last)
        del self._log[last:]
        self.replay()

    def replace(self, story: CompiledStory) -> None:
        """Swap in a newly compiled story and replay the log against it."""
        if self._disposed:
            return
        logger.info("Replacing story, replaying %d action(s)", len(self._log))
        self._story = story
        self.replay()

    def replay(self) -> None:
        if self._disposed:
            return
        runtime = self._story.new_runtime() if self._story is not None else None
        state = self._empty_state()
        diverged_at: int | None = None
        divergence_errors: list[ErrorInfo] = []

        for i, action in enumerate(self._log):
            if action.type in NARRATIVE_ACTION_TYPES and runtime is None:
                continue
            if isinstance(action, StartAction):
                diverged_at = None
            elif isinstance(action, SelectChoiceAction):
                if diverged_at is not None:
                    logger.debug("Replay: skipping choice %d after divergence", action.index)
                    continue
                if not reducer.is_choice_available(runtime, action.index):
                    diverged_at = i
                    before = len(state.errors)
                    state = reducer.apply(state, action, runtime)
                    divergence_errors = list(state.errors[before:])
                    logger.warning("Replay diverged at choice %d", action.index)
                    continue
            state = reducer.apply(state, action, runtime)

        self._runtime = runtime
        self._state = state
        self._diverged_at = diverged_at
        self._divergence_errors = divergence_errors if diverged_at is not None else []
        self._notify()

    def reset(self) -> None:
        """Clear log and state. The story reference is kept."""
        if self._disposed:
            return
        self._log = []
        self._diverged_at = None
        self._divergence_errors = []
        self._state = self._empty_state()
        if self._story is not None:
            self._runtime = self._story.new_runtime()
        self._notify()

    def dispose(self) -> None:
        logger.debug("Disposing session")
        self._disposed = True
        self._story = None
        self._runtime = None
        self._on_state_change = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _empty_state(self) -> State:
        return State(live_update=self._live_update_default)

    def _settle_divergence(self) -> None:
        """Cut the log down to the position the last replay actually reached."""
        at = self._diverged_at
        if at is None:
            return
        kept = [a for a in self._log[at + 1:] if not isinstance(a, SelectChoiceAction)]
        dropped = len(self._log) - at - len(kept)
        self._log[at:] = [RecordErrorsAction(errors=self._divergence_errors), *kept]
        self._diverged_at = None
        self._divergence_errors = []
        logger.info("Dropped %d unreachable choice(s) from the log", dropped)

    def _notify(self) -> None:
        callback = self._on_state_change
        if callback is None:
            return
        try:
            callback(self._state)
        except Exception:
            logger.exception("State observer failed; state is kept")


def _last_choice_index(log: ActionLog) -> int | None:
    for i in range(len(log) - 1, -1, -1):
        if isinstance(log[i], SelectChoiceAction):
            return i
    return None
