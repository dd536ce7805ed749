from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import pytest

from traffic_coordinator.coordinator.outcomes import Ended, SessionSnapshot, Started
from traffic_coordinator.coordinator.session_coordinator import SessionCoordinator
from traffic_coordinator.storage.store import PersistenceStore


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualBroadcaster:
    """Stand-in for StatusBroadcaster; tests fire ticks by hand."""

    def __init__(self, *, generation: int, interval_seconds: float, on_tick: Callable[[int], bool]) -> None:
        self.generation = generation
        self.interval_seconds = interval_seconds
        self.on_tick = on_tick
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> bool:
        return self.on_tick(self.generation)


@dataclass
class RecordingListener:
    updates: list[SessionSnapshot] = field(default_factory=list)
    finalized: list[Ended] = field(default_factory=list)
    promoted: list[Started] = field(default_factory=list)

    def status_update(self, snapshot: SessionSnapshot) -> None:
        self.updates.append(snapshot)

    def session_finalized(self, ended: Ended) -> None:
        self.finalized.append(ended)

    def session_promoted(self, started: Started) -> None:
        self.promoted.append(started)


@dataclass
class CoordinatorRig:
    coordinator: SessionCoordinator
    store: PersistenceStore
    clock: ManualClock
    broadcasters: list[ManualBroadcaster]

    @property
    def current_broadcaster(self) -> ManualBroadcaster:
        return self.broadcasters[-1]


def build_rig(data_dir: Path, *, duration_seconds: float = 200.0) -> CoordinatorRig:
    store = PersistenceStore(data_dir, retry_backoff_seconds=0)
    clock = ManualClock()
    broadcasters: list[ManualBroadcaster] = []

    def factory(*, generation: int, interval_seconds: float, on_tick: Callable[[int], bool]) -> ManualBroadcaster:
        broadcaster = ManualBroadcaster(
            generation=generation, interval_seconds=interval_seconds, on_tick=on_tick
        )
        broadcasters.append(broadcaster)
        return broadcaster

    coordinator = SessionCoordinator(
        store=store,
        duration_seconds=duration_seconds,
        status_interval_seconds=5.0,
        domain="https://traffic.example.test",
        clock=clock,
        broadcaster_factory=factory,  # type: ignore[arg-type]
    )
    return CoordinatorRig(coordinator=coordinator, store=store, clock=clock, broadcasters=broadcasters)


@pytest.fixture
def rig(tmp_path: Path) -> CoordinatorRig:
    return build_rig(tmp_path / "data")
