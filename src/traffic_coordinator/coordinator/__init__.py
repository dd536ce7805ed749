from __future__ import annotations

from traffic_coordinator.coordinator.broadcaster import StatusBroadcaster
from traffic_coordinator.coordinator.queue import QueueEntry, WaitingQueue
from traffic_coordinator.coordinator.session_coordinator import (
    CoordinatorListener,
    NullListener,
    SessionCoordinator,
)

__all__ = [
    "CoordinatorListener",
    "NullListener",
    "QueueEntry",
    "SessionCoordinator",
    "StatusBroadcaster",
    "WaitingQueue",
]
