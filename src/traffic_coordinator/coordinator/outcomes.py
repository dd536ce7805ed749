from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from traffic_coordinator.storage.models import HistoryRecord, Session, format_timestamp

REJECT_NO_ACTIVE_SESSION = "no_active_session"
REJECT_NOT_OWNER = "not_owner"


@dataclass(frozen=True)
class SessionSnapshot:
    owner_id: int
    display_name: str
    secret_path: str
    target: str
    request_count: int
    started_at: float
    duration_seconds: float
    remaining_seconds: float
    status: str

    @classmethod
    def of(cls, session: Session, *, now: float) -> SessionSnapshot:
        return cls(
            owner_id=session.owner_id,
            display_name=session.display_name,
            secret_path=session.secret_path,
            target=session.target,
            request_count=session.request_count,
            started_at=session.started_at,
            duration_seconds=session.duration_seconds,
            remaining_seconds=max(0.0, session.remaining_seconds(now)),
            status=session.status,
        )

    def as_status_payload(self) -> dict[str, Any]:
        return {
            "status": "active",
            "user_id": self.owner_id,
            "display_name": self.display_name,
            "path": self.secret_path,
            "request_count": self.request_count,
            "start_time": format_timestamp(self.started_at),
            "remaining_time": round(self.remaining_seconds, 3),
        }


@dataclass(frozen=True)
class Started:
    session: SessionSnapshot
    already_active: bool = False
    storage_degraded: bool = False


@dataclass(frozen=True)
class Queued:
    position: int
    already_waiting: bool = False


@dataclass(frozen=True)
class Ended:
    record: HistoryRecord
    promoted: Started | None = None
    storage_degraded: bool = False


@dataclass(frozen=True)
class Rejected:
    reason: str


@dataclass(frozen=True)
class Accepted:
    request_count: int
    storage_degraded: bool = False


@dataclass(frozen=True)
class RejectedNoSession:
    pass


@dataclass(frozen=True)
class RejectedPathMismatch:
    pass


StartOutcome = Union[Started, Queued]
EndOutcome = Union[Ended, Rejected]
HitOutcome = Union[Accepted, RejectedNoSession, RejectedPathMismatch]
