from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

STATUS_ACTIVE = "active"
STATUS_ENDING = "ending"
SESSION_STATUSES = (STATUS_ACTIVE, STATUS_ENDING)

END_REASON_ENDED = "ended"
END_REASON_EXPIRED = "expired"


def format_timestamp(epoch_seconds: float) -> str:
    return datetime.fromtimestamp(epoch_seconds).astimezone().isoformat(timespec="seconds")


@dataclass
class Session:
    owner_id: int
    display_name: str
    secret_path: str
    started_at: float
    duration_seconds: float
    domain: str
    request_count: int = 0
    status: str = STATUS_ACTIVE
    # In-memory only; bumped for every session so stale timer ticks can be told apart.
    generation: int = 0

    @property
    def target(self) -> str:
        return f"{self.domain.rstrip('/')}{self.secret_path}"

    def remaining_seconds(self, now: float) -> float:
        return self.duration_seconds - (now - self.started_at)

    def as_dict(self) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "display_name": self.display_name,
            "secret_path": self.secret_path,
            "started_at": self.started_at,
            "duration_seconds": self.duration_seconds,
            "domain": self.domain,
            "request_count": self.request_count,
            "status": self.status,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Session:
        status = str(payload.get("status", STATUS_ACTIVE))
        if status not in SESSION_STATUSES:
            raise ValueError(f"Unknown session status: {status!r}")
        request_count = int(payload.get("request_count", 0))
        if request_count < 0:
            raise ValueError("request_count must not be negative.")
        return cls(
            owner_id=int(payload["owner_id"]),
            display_name=str(payload.get("display_name", "")),
            secret_path=str(payload["secret_path"]),
            started_at=float(payload["started_at"]),
            duration_seconds=float(payload["duration_seconds"]),
            domain=str(payload.get("domain", "")),
            request_count=request_count,
            status=status,
        )


@dataclass(frozen=True)
class HistoryRecord:
    owner_id: int
    secret_path: str
    total_requests: int
    started_at: float
    ended_at: float
    display_name: str
    end_reason: str = END_REASON_ENDED

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> HistoryRecord:
        return cls(
            owner_id=int(payload["owner_id"]),
            secret_path=str(payload["secret_path"]),
            total_requests=int(payload["total_requests"]),
            started_at=float(payload["started_at"]),
            ended_at=float(payload["ended_at"]),
            display_name=str(payload.get("display_name", "")),
            end_reason=str(payload.get("end_reason", END_REASON_ENDED)),
        )

    @classmethod
    def from_session(cls, session: Session, *, ended_at: float, end_reason: str) -> HistoryRecord:
        return cls(
            owner_id=session.owner_id,
            secret_path=session.secret_path,
            total_requests=session.request_count,
            started_at=session.started_at,
            ended_at=ended_at,
            display_name=session.display_name,
            end_reason=end_reason,
        )
