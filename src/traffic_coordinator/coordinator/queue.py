from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field


@dataclass(frozen=True)
class QueueEntry:
    requester_id: int
    display_name: str
    enqueued_at: float = field(default_factory=time.time)


class WaitingQueue:
    """FIFO of requesters waiting for the session slot. Only the coordinator mutates it."""

    def __init__(self) -> None:
        self._entries: deque[QueueEntry] = deque()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def enqueue(self, entry: QueueEntry) -> int:
        self._entries.append(entry)
        return len(self._entries)

    def dequeue(self) -> QueueEntry | None:
        if not self._entries:
            return None
        return self._entries.popleft()

    def position_of(self, requester_id: int) -> int | None:
        for idx, entry in enumerate(self._entries, start=1):
            if entry.requester_id == requester_id:
                return idx
        return None

    def snapshot(self) -> list[QueueEntry]:
        return list(self._entries)
