from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from traffic_coordinator.housekeeping import DailyResetScheduler, seconds_until_next
from traffic_coordinator.storage.models import HistoryRecord
from traffic_coordinator.storage.ranking import RankingStore
from traffic_coordinator.storage.store import PersistenceError, PersistenceStore


def test_seconds_until_next_reset() -> None:
    assert seconds_until_next(datetime(2026, 10, 19, 23, 30), 0, 0) == 1800
    assert seconds_until_next(datetime(2026, 10, 19, 0, 0), 0, 0) == 86400
    assert seconds_until_next(datetime(2026, 10, 19, 6, 0), 7, 15) == 4500


def test_run_reset_clears_ranking_and_fans_out(tmp_path: Path) -> None:
    store = PersistenceStore(tmp_path / "data")
    ranking = RankingStore(store)
    for owner in (1, 2):
        store.add_user(owner)
        ranking.append(
            HistoryRecord(
                owner_id=owner,
                secret_path=f"/target_{owner:032x}",
                total_requests=owner * 10,
                started_at=0.0,
                ended_at=200.0,
                display_name=f"u{owner}",
            )
        )
    sent: list[tuple[list[int], str]] = []

    def fan_out(user_ids: list[int], text: str) -> int:
        sent.append((user_ids, text))
        return len(user_ids)

    scheduler = DailyResetScheduler(ranking=ranking, fan_out=fan_out, reset_message="fresh day")
    assert scheduler.run_reset() == 2
    assert sent == [([1, 2], "fresh day")]
    assert ranking.top_n(5) == []


def test_failed_reset_notifies_nobody(tmp_path: Path, monkeypatch: Any) -> None:
    store = PersistenceStore(tmp_path / "data")
    store.add_user(1)

    def broken_clear() -> None:
        raise PersistenceError("session_history.json", OSError("disk full"))

    monkeypatch.setattr(store, "clear_history", broken_clear)
    sent: list[Any] = []
    scheduler = DailyResetScheduler(
        ranking=RankingStore(store),
        fan_out=lambda ids, text: sent.append(ids) or 0,
        reset_message="fresh day",
    )
    assert scheduler.run_reset() == 0
    assert sent == []
