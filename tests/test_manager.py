"""Tests for ink_preview.manager.PreviewManager."""

from pathlib import Path

import pytest

from ink_preview.errors import TextNotFound
from ink_preview.manager import DEFAULT_TITLE, PreviewManager

SOURCE = "Hello.\n* [wave] You wave.\n* [leave] You leave.\n"


class RecordingChannel:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    def post_message(self, message: dict) -> None:
        self.messages.append(message)


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
async def manager(channel):
    m = PreviewManager(channel=channel)
    m.bridge.handle_message({"command": "ready"})
    yield m
    m.dispose()


def _texts(manager: PreviewManager) -> list[str]:
    return [line.text for line in manager.bridge.get_state().transcript]


async def test_preview_compiles_and_starts(manager, tmp_path) -> None:
    path = tmp_path / "tavern.ink"
    assert manager.title == DEFAULT_TITLE
    assert manager.preview(path, SOURCE) is True
    await manager.wait_idle()
    assert _texts(manager) == ["Hello."]
    assert manager.title == "tavern.ink (Preview)"
    assert manager.path == path
    assert manager.document_text == SOURCE


async def test_same_document_not_recompiled(manager, tmp_path) -> None:
    path = tmp_path / "tavern.ink"
    manager.preview(path, SOURCE)
    await manager.wait_idle()
    assert manager.preview(path, SOURCE) is False
    assert manager.preview(path, SOURCE + "Bye.\n") is True
    await manager.wait_idle()


async def test_new_document_starts_fresh_session(manager, tmp_path) -> None:
    manager.preview(tmp_path / "a.ink", SOURCE)
    await manager.wait_idle()
    manager.bridge.handle_message({"command": "action", "payload": {"type": "select_choice", "index": 1}})
    assert _texts(manager) == ["Hello.", "You leave."]

    manager.preview(tmp_path / "b.ink", "B intro.\n* [x] B x.\n* [y] B y.\n")
    await manager.wait_idle()
    assert _texts(manager) == ["B intro."]
    assert [a.type for a in manager.session.log] == ["start"]
    assert manager.title == "b.ink (Preview)"


async def test_edit_of_same_document_keeps_playthrough(manager, tmp_path) -> None:
    path = tmp_path / "a.ink"
    manager.preview(path, SOURCE)
    await manager.wait_idle()
    manager.bridge.handle_message({"command": "action", "payload": {"type": "select_choice", "index": 1}})

    manager.preview(path, SOURCE.replace("You leave.", "You slip away."))
    await manager.wait_idle()
    assert _texts(manager) == ["Hello.", "You slip away."]


async def test_includes_resolve_next_to_document(manager, tmp_path) -> None:
    (tmp_path / "intro.ink").write_text("From the include.\n")
    manager.preview(tmp_path / "main.ink", "INCLUDE intro\nMain text.\n")
    await manager.wait_idle()
    assert _texts(manager) == ["From the include.", "Main text."]


async def test_saves_follow_live_update(manager, tmp_path) -> None:
    path = tmp_path / "tavern.ink"
    manager.preview(path, SOURCE)
    await manager.wait_idle()

    manager.bridge.handle_message({"command": "action", "payload": {"type": "toggle_live_update", "enabled": False}})
    assert manager.is_live_update_enabled() is False
    assert manager.document_saved(path, "Changed.\n") is False
    assert _texts(manager) == ["Hello."]

    manager.bridge.handle_message({"command": "action", "payload": {"type": "toggle_live_update", "enabled": True}})
    assert manager.document_saved(path, "Changed.\n") is True
    await manager.wait_idle()
    assert _texts(manager) == ["Changed."]


async def test_live_update_default_off(tmp_path) -> None:
    m = PreviewManager(live_update_default=False)
    try:
        assert m.document_saved(tmp_path / "a.ink", SOURCE) is False
        assert m.is_active()
    finally:
        m.dispose()


async def test_jump_to_line_message(manager, channel, tmp_path) -> None:
    manager.preview(tmp_path / "tavern.ink", SOURCE)
    await manager.wait_idle()
    manager.bridge.handle_message({"command": "jumpToLine", "payload": {"text": "You leave."}})
    reveal = [m for m in channel.messages if m["command"] == "revealPosition"]
    assert reveal == [{"command": "revealPosition", "payload": {"line": 2, "character": 0}}]


async def test_jump_miss_posts_nothing(manager, channel, tmp_path) -> None:
    manager.preview(tmp_path / "tavern.ink", SOURCE)
    await manager.wait_idle()
    manager.bridge.handle_message({"command": "jumpToLine", "payload": {"text": "dragons"}})
    assert all(m["command"] != "revealPosition" for m in channel.messages)
    with pytest.raises(TextNotFound):
        manager.jump(text="dragons")


def test_jump_without_document() -> None:
    m = PreviewManager()
    with pytest.raises(ValueError):
        m.jump(line=0)


async def test_outline_and_definition(manager, tmp_path) -> None:
    source = "-> inn\n=== inn ===\nWarm.\n"
    manager.preview(tmp_path / "inn.ink", source)
    await manager.wait_idle()
    assert [k.name for k in manager.outline().knots] == ["inn"]
    assert manager.definition(0, 4).line == 1


async def test_dispose(manager, tmp_path) -> None:
    manager.dispose()
    assert not manager.is_active()
    assert manager.preview(tmp_path / "a.ink", SOURCE) is False
    assert manager.document_saved(tmp_path / "a.ink", SOURCE) is False
