"""Tests for ink_preview.session.SessionController.

The road story is used throughout: a fork with two branches, the left one
leading to a second choice between fleeing and opening a door.
"""

from pathlib import Path

import pytest

from ink_preview.models import (
    ErrorInfo,
    RecordErrorsAction,
    RewindAction,
    SelectChoiceAction,
    StartAction,
    ToggleLiveUpdateAction,
)
from ink_preview.runtime import FileIncludeResolver
from ink_preview.session import SessionController
from ink_preview.story import InkCompiler

ROAD = """\
You stand at a fork in the road.
* [go left] -> left
* [go right] -> right

=== left ===
The left path winds into the woods.
* [flee] -> flee
* [open door] -> door

=== right ===
A cliff blocks the way.
-> END

=== door ===
The door creaks open.
-> END

=== flee ===
You run back the way you came.
-> END
"""

# The same story after the author deleted the door.
ROAD_WITHOUT_DOOR = ROAD.replace("* [open door] -> door\n", "")

INTRO = "You stand at a fork in the road."
LEFT = "The left path winds into the woods."
DOOR = "The door creaks open."


def _story(source: str = ROAD):
    return InkCompiler().compile(source, FileIncludeResolver(Path(".")))


def _texts(session: SessionController) -> list[str]:
    return [line.text for line in session.get_state().transcript]


@pytest.fixture
def session():
    s = SessionController()
    s.set_story(_story())
    return s


# ── Dispatch ──────────────────────────────────────────────


class TestDispatch:
    def test_start_and_choices(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))
        assert _texts(session) == [INTRO, LEFT, DOOR]
        assert session.get_state().ended is True
        assert len(session.log) == 3

    def test_invalid_choice_records_one_error(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=5))
        state = session.get_state()
        assert _texts(session) == [INTRO]
        assert len(state.errors) == 1
        assert state.errors[0].kind == "invalid_choice"

    def test_invalid_choice_is_logged_as_its_error(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=5))
        session.dispatch(SelectChoiceAction(index=0))
        assert isinstance(session.log[1], RecordErrorsAction)
        session.replay()
        assert _texts(session) == [INTRO, LEFT]
        assert len(session.get_state().errors) == 1

    def test_narrative_action_without_story_ignored(self) -> None:
        s = SessionController()
        s.dispatch(StartAction())
        assert s.log == []
        assert s.get_state().transcript == []

    def test_metadata_without_story_applies(self) -> None:
        s = SessionController()
        s.dispatch(ToggleLiveUpdateAction(enabled=False))
        assert s.get_state().live_update is False

    def test_live_update_default(self) -> None:
        s = SessionController(live_update_default=False)
        assert s.get_state().live_update is False

    def test_log_is_a_copy(self, session) -> None:
        session.dispatch(StartAction())
        session.log.clear()
        assert len(session.log) == 1


# ── Replay ────────────────────────────────────────────────


class TestReplay:
    def test_replay_is_deterministic(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(ToggleLiveUpdateAction(enabled=False))
        before = session.get_state()
        session.replay()
        assert session.get_state() == before
        session.replay()
        assert session.get_state() == before

    def test_replace_with_same_story(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=1))
        before = session.get_state()
        session.replace(_story())
        assert session.get_state() == before

    def test_divergence_after_edit(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))
        assert _texts(session) == [INTRO, LEFT, DOOR]

        session.replace(_story(ROAD_WITHOUT_DOOR))

        state = session.get_state()
        assert _texts(session) == [INTRO, LEFT]
        assert [e.kind for e in state.errors] == ["invalid_choice"]
        assert [c.text for c in state.choices] == ["flee"]

    def test_divergence_leaves_log_untouched(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))
        log = session.log
        session.replace(_story(ROAD_WITHOUT_DOOR))

        assert session.log == log
        # Replaying the same log again reports the divergence once, not twice.
        before = session.get_state()
        session.replay()
        assert session.get_state() == before

    def test_cut_and_restored_choice_replays_fully(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))

        session.replace(_story(ROAD_WITHOUT_DOOR))
        assert _texts(session) == [INTRO, LEFT]

        session.replace(_story(ROAD))
        assert _texts(session) == [INTRO, LEFT, DOOR]
        assert session.get_state().errors == []

    def test_divergence_stops_choice_replay_keeps_metadata(self) -> None:
        s = SessionController()
        s.set_story(_story())
        s.dispatch(StartAction())
        s.dispatch(SelectChoiceAction(index=0))
        s.dispatch(SelectChoiceAction(index=1))
        s.dispatch(ToggleLiveUpdateAction(enabled=False))
        s.dispatch(RecordErrorsAction(errors=[ErrorInfo(message="note", severity="info")]))

        # A story whose only choice leads nowhere new: index 0 still works,
        # but the old index 1 does not exist any more.
        s.replace(_story("Intro.\n* [only] Only.\n"))

        state = s.get_state()
        assert [line.text for line in state.transcript] == ["Intro.", "Only."]
        assert state.live_update is False
        assert [e.kind for e in state.errors] == ["invalid_choice", "runtime"]

    def test_choices_after_start_replay_again(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=1))
        session.replace(_story(ROAD_WITHOUT_DOOR))
        assert _texts(session) == [INTRO, "A cliff blocks the way."]

    def test_user_choice_after_divergence_survives_next_replay(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))
        session.replace(_story(ROAD_WITHOUT_DOOR))
        session.dispatch(SelectChoiceAction(index=0))
        assert _texts(session)[-1] == "You run back the way you came."
        # The new choice branches off: the unreachable one is kept only as its error.
        assert [a.type for a in session.log] == ["start", "select_choice", "record_errors", "select_choice"]

        session.replace(_story(ROAD_WITHOUT_DOOR))
        assert _texts(session)[-1] == "You run back the way you came."
        session.replace(_story(ROAD))
        assert _texts(session) == [INTRO, LEFT, "You run back the way you came."]

    def test_metadata_after_divergence_keeps_divergent_choice(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))
        session.replace(_story(ROAD_WITHOUT_DOOR))
        session.dispatch(ToggleLiveUpdateAction(enabled=False))

        session.replace(_story(ROAD))
        assert _texts(session) == [INTRO, LEFT, DOOR]
        assert session.get_state().live_update is False


# ── Rewind ────────────────────────────────────────────────


class TestRewind:
    def test_rewind_equals_replay_of_prefix(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(ToggleLiveUpdateAction(enabled=False))
        session.dispatch(SelectChoiceAction(index=1))
        session.dispatch(RewindAction())

        expected = SessionController()
        expected.set_story(_story())
        expected.dispatch(StartAction())
        expected.dispatch(SelectChoiceAction(index=0))
        expected.dispatch(ToggleLiveUpdateAction(enabled=False))

        assert session.get_state() == expected.get_state()
        assert session.log == expected.log

    def test_rewind_is_not_logged(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(RewindAction())
        assert [a.type for a in session.log] == ["start"]
        assert _texts(session) == [INTRO]
        assert len(session.get_state().choices) == 2

    def test_rewind_without_choices_only_notifies(self, session) -> None:
        seen = []
        session.dispatch(StartAction())
        session.set_on_state_change(seen.append)
        session.dispatch(RewindAction())
        assert len(seen) == 1
        assert _texts(session) == [INTRO]

    def test_repeated_rewind(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=0))
        session.rewind()
        session.rewind()
        assert _texts(session) == [INTRO]

    def test_rewind_while_diverged_undoes_last_reachable_choice(self, session) -> None:
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        session.dispatch(SelectChoiceAction(index=1))
        session.replace(_story(ROAD_WITHOUT_DOOR))

        session.dispatch(RewindAction())
        assert [a.type for a in session.log] == ["start"]
        assert _texts(session) == [INTRO]
        assert session.get_state().errors == []


# ── Observer, reset, dispose ──────────────────────────────


class TestLifecycle:
    def test_observer_called_once_per_dispatch(self, session) -> None:
        seen = []
        session.set_on_state_change(seen.append)
        session.dispatch(StartAction())
        session.dispatch(SelectChoiceAction(index=0))
        assert len(seen) == 2
        assert seen[-1] == session.get_state()

    def test_last_observer_wins(self, session) -> None:
        first, second = [], []
        session.set_on_state_change(first.append)
        session.set_on_state_change(second.append)
        session.dispatch(StartAction())
        assert first == []
        assert len(second) == 1

    def test_observer_failure_keeps_state(self, session) -> None:
        def boom(state):
            raise RuntimeError("surface gone")

        session.set_on_state_change(boom)
        session.dispatch(StartAction())
        assert _texts(session) == [INTRO]
        assert len(session.log) == 1

    def test_reset(self, session) -> None:
        session.dispatch(StartAction())
        session.reset()
        assert session.log == []
        assert session.get_state().transcript == []
        assert session.story is not None

    def test_dispose(self, session) -> None:
        session.dispatch(StartAction())
        log = session.log
        session.dispose()
        session.dispatch(SelectChoiceAction(index=0))
        session.rewind()
        session.replay()
        assert session.disposed
        assert session.story is None
        assert session.log == log
