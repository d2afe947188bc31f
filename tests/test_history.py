from __future__ import annotations

from pathlib import Path

import pytest

from form_pilot.errors import PersistenceUnavailable
from form_pilot.history.base import DegradingHistoryStore, InMemoryHistoryStore, NullHistoryStore
from form_pilot.history.jsonl import JsonlHistoryStore
from form_pilot.models import ToolCall, Turn, TurnRole


def _turns() -> list[Turn]:
    call = ToolCall(name="navigate_to_website", arguments={"url": "example.com"})
    return [
        Turn.user("open example.com"),
        Turn.model(tool_calls=[call]),
        Turn.tool_result(call, {"success": True, "message": "ok"}),
        Turn.model("Done."),
    ]


def test_in_memory_store_keeps_order_per_session():
    store = InMemoryHistoryStore()
    for turn in _turns():
        store.append("a", turn)
    store.append("b", Turn.user("other"))

    assert [turn.role for turn in store.read("a")] == [
        TurnRole.USER,
        TurnRole.MODEL,
        TurnRole.TOOL,
        TurnRole.MODEL,
    ]
    assert [turn.content for turn in store.read("b")] == ["other"]
    assert store.read("missing") == []


def test_null_store_keeps_nothing():
    store = NullHistoryStore()
    store.append("a", Turn.user("hello"))

    assert store.read("a") == []


def test_jsonl_store_persists_across_instances(tmp_path: Path):
    turns = _turns()
    store = JsonlHistoryStore(tmp_path / "history")
    for turn in turns:
        store.append("session-1", turn)

    reloaded = JsonlHistoryStore(tmp_path / "history").read("session-1")

    assert reloaded == turns
    assert reloaded[1].tool_calls[0].arguments == {"url": "example.com"}
    assert reloaded[2].payload() == {"success": True, "message": "ok"}


def test_jsonl_store_keeps_files_inside_directory(tmp_path: Path):
    store = JsonlHistoryStore(tmp_path / "history")

    hostile = store.path_for("../../etc/passwd")
    lookalike = store.path_for("__etc_passwd")

    assert hostile.parent == (tmp_path / "history").resolve()
    assert hostile != lookalike
    assert store.path_for("plain-id.1").name == "plain-id.1.jsonl"


def test_jsonl_store_reports_corrupt_files(tmp_path: Path):
    store = JsonlHistoryStore(tmp_path)
    store.path_for("s").write_text("{not json}\n")

    with pytest.raises(PersistenceUnavailable):
        store.read("s")


def test_degrading_store_swallows_backend_outage(tmp_path: Path):
    blocker = tmp_path / "history"
    blocker.write_text("not a directory")
    store = DegradingHistoryStore(JsonlHistoryStore(blocker))

    store.append("s", Turn.user("hello"))

    assert store.read("s") == []
