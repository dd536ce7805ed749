from __future__ import annotations

from pathlib import Path

import pytest
from conftest import CoordinatorRig, build_rig

from traffic_coordinator.chat.interface import ChatInterface, UnknownActionError
from traffic_coordinator.chat.messages import NO_HISTORY
from traffic_coordinator.chat.notifier import OutboxNotifier


def _chat(tmp_path: Path) -> tuple[ChatInterface, OutboxNotifier, CoordinatorRig]:
    rig = build_rig(tmp_path / "data")
    notifier = OutboxNotifier()
    chat = ChatInterface(coordinator=rig.coordinator, notifier=notifier, ranking_limit=5)
    return chat, notifier, rig


def test_start_and_queue_replies(tmp_path: Path) -> None:
    chat, _, rig = _chat(tmp_path)
    reply = chat.handle("start_session", user_id=1, display_name="alice")
    snapshot = rig.coordinator.status()
    assert snapshot is not None
    assert "Traffic session started" in reply
    assert snapshot.target in reply
    assert "Duration: 200 seconds" in reply
    assert "Started by: alice" in reply

    queued = chat.handle("start_session", user_id=2, display_name="bob")
    assert "queue at position 1" in queued
    assert "already in the queue" in chat.handle("start_session", user_id=2, display_name="bob")
    assert "already running" in chat.handle("start_session", user_id=1, display_name="alice")


def test_end_replies_and_promotion_notice(tmp_path: Path) -> None:
    chat, notifier, rig = _chat(tmp_path)
    chat.handle("start_session", user_id=1, display_name="alice")
    chat.handle("start_session", user_id=2, display_name="bob")
    token = rig.coordinator.status().secret_path  # type: ignore[union-attr]
    rig.coordinator.record_hit(token)
    rig.coordinator.record_hit(token)

    assert "Only the user who started" in chat.handle("end_session", user_id=2, display_name="bob")

    reply = chat.handle("end_session", user_id=1, display_name="alice")
    assert "Session ended" in reply
    assert "Total requests: 2" in reply
    assert "Data from: alice" in reply
    assert "ended by its owner" in reply

    promoted = notifier.messages(2)
    assert len(promoted) == 1
    assert "Your turn has come" in promoted[0].text
    assert "Started by: bob" in promoted[0].text


def test_end_without_session_reply(tmp_path: Path) -> None:
    chat, _, _ = _chat(tmp_path)
    assert "no active session" in chat.handle("end_session", user_id=1, display_name="alice")


def test_empty_session_summary_says_no_data(tmp_path: Path) -> None:
    chat, _, _ = _chat(tmp_path)
    chat.handle("start_session", user_id=1, display_name="alice")
    assert "No data found" in chat.handle("end_session", user_id=1, display_name="alice")


def test_status_updates_replace_the_previous_one(tmp_path: Path) -> None:
    chat, notifier, rig = _chat(tmp_path)
    chat.handle("start_session", user_id=1, display_name="alice")
    token = rig.coordinator.status().secret_path  # type: ignore[union-attr]

    for hits in range(1, 4):
        rig.coordinator.record_hit(token)
        rig.clock.advance(5)
        rig.current_broadcaster.fire()
        visible = notifier.messages(1)
        assert len(visible) == 1
        assert f"Current requests: {hits}" in visible[0].text

    assert f"Remaining time: {200 - 15} seconds" in notifier.messages(1)[0].text


def test_expiry_notice_goes_to_the_owner(tmp_path: Path) -> None:
    chat, notifier, rig = _chat(tmp_path)
    chat.handle("start_session", user_id=1, display_name="alice")
    rig.clock.advance(5)
    rig.current_broadcaster.fire()
    rig.clock.advance(300)
    rig.current_broadcaster.fire()

    texts = [item.text for item in notifier.messages(1)]
    assert any("Session expired" in text for text in texts)
    assert rig.coordinator.state == "idle"


def test_rank_reply(tmp_path: Path) -> None:
    chat, _, rig = _chat(tmp_path)
    assert chat.handle("rank", user_id=1, display_name="alice") == NO_HISTORY

    for owner, name, hits in [(1, "alice", 10), (2, "bob", 50), (3, "carol", 30)]:
        chat.handle("start_session", user_id=owner, display_name=name)
        token = rig.coordinator.status().secret_path  # type: ignore[union-attr]
        for _ in range(hits):
            rig.coordinator.record_hit(token)
        chat.handle("end_session", user_id=owner, display_name=name)

    lines = chat.handle("rank", user_id=1, display_name="alice").splitlines()
    assert lines[2:] == [
        "1. bob - 50 requests",
        "2. carol - 30 requests",
        "3. alice - 10 requests",
    ]


def test_unknown_action_is_refused(tmp_path: Path) -> None:
    chat, _, _ = _chat(tmp_path)
    with pytest.raises(UnknownActionError):
        chat.handle("launch", user_id=1, display_name="alice")


def test_notify_all_counts_deliveries(tmp_path: Path) -> None:
    chat, notifier, _ = _chat(tmp_path)
    assert chat.notify_all([1, 2, 3], "reset") == 3
    assert [item.text for item in notifier.messages(2)] == ["reset"]


def test_outbox_keeps_bounded_history() -> None:
    notifier = OutboxNotifier(history_size=2)
    first = notifier.send(1, "a")
    notifier.send(1, "b")
    notifier.send(1, "c")
    assert [item.text for item in notifier.messages(1)] == ["b", "c"]
    assert notifier.delete(1, first) is False
    assert notifier.messages(99) == []
