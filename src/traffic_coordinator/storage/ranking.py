from __future__ import annotations

from traffic_coordinator.logging_setup import get_logger
from traffic_coordinator.storage.models import HistoryRecord
from traffic_coordinator.storage.store import PersistenceStore


def ranking_key(record: HistoryRecord) -> tuple[int, float]:
    return (-record.total_requests, record.ended_at)


class RankingStore:
    def __init__(self, store: PersistenceStore) -> None:
        self.store = store
        self.logger = get_logger(__name__)

    def append(self, record: HistoryRecord) -> None:
        self.store.append_history(record)
        self.logger.debug(
            "History appended owner=%s total_requests=%d reason=%s",
            record.owner_id,
            record.total_requests,
            record.end_reason,
        )

    def all(self) -> list[HistoryRecord]:
        return self.store.load_history()

    def top_n(self, n: int) -> list[HistoryRecord]:
        if n <= 0:
            return []
        return sorted(self.store.load_history(), key=ranking_key)[:n]

    def reset_all(self) -> list[int]:
        """Clear the history log and return every known user id for fan-out."""
        self.store.clear_history()
        users = sorted(self.store.load_users())
        self.logger.info("Ranking reset; %d known user(s) to notify.", len(users))
        return users
