from __future__ import annotations

from traffic_coordinator.storage.models import HistoryRecord, Session
from traffic_coordinator.storage.ranking import RankingStore
from traffic_coordinator.storage.store import PersistenceError, PersistenceStore

__all__ = ["HistoryRecord", "PersistenceError", "PersistenceStore", "RankingStore", "Session"]
