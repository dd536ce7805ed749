from __future__ import annotations

from traffic_coordinator.coordinator.outcomes import (
    REJECT_NOT_OWNER,
    Ended,
    Queued,
    Rejected,
    SessionSnapshot,
    Started,
)
from traffic_coordinator.storage.models import END_REASON_EXPIRED, HistoryRecord

RULE = "-" * 30
STORAGE_WARNING = "Warning: the result could not be saved reliably; storage may be degraded."
NO_HISTORY = "No sessions have been recorded yet."


def _with_storage_warning(text: str, degraded: bool) -> str:
    if not degraded:
        return text
    return f"{text}\n\n{STORAGE_WARNING}"


def render_started(started: Started) -> str:
    session = started.session
    if started.already_active:
        return (
            "Your session is already running.\n"
            f"Target: {session.target}\n"
            f"Remaining: {round(session.remaining_seconds)} seconds"
        )
    text = "\n".join(
        [
            "Traffic session started",
            RULE,
            "Statistics are being collected",
            f"Target: {session.target}",
            f"Duration: {round(session.duration_seconds)} seconds",
            f"Started by: {session.display_name}",
        ]
    )
    return _with_storage_warning(text, started.storage_degraded)


def render_queued(queued: Queued) -> str:
    if queued.already_waiting:
        return f"You are already in the queue at position {queued.position}."
    return (
        "Another user is running a session. "
        f"You have been added to the queue at position {queued.position}."
    )


def render_summary(record: HistoryRecord) -> str:
    metric = (
        f"Total requests: {record.total_requests}"
        if record.total_requests > 0
        else "No data found"
    )
    heading = "Session expired" if record.end_reason == END_REASON_EXPIRED else "Session ended"
    return "\n".join(
        [
            f"{heading}: total traffic overview",
            RULE,
            "Metric statistics:",
            metric,
            f"Data from: {record.display_name}",
        ]
    )


def render_ended(ended: Ended) -> str:
    return _with_storage_warning(render_summary(ended.record), ended.storage_degraded)


def render_rejected(rejected: Rejected) -> str:
    if rejected.reason == REJECT_NOT_OWNER:
        return "Only the user who started the session can end it."
    return "There is no active session to end."


def render_status_update(snapshot: SessionSnapshot) -> str:
    return "\n".join(
        [
            "Session update",
            RULE,
            f"Current requests: {snapshot.request_count}",
            f"Remaining time: {round(snapshot.remaining_seconds)} seconds",
            f"Data from: {snapshot.display_name}",
        ]
    )


def render_ranking(records: list[HistoryRecord]) -> str:
    if not records:
        return NO_HISTORY
    lines = ["Session ranking", RULE]
    for idx, record in enumerate(records, start=1):
        lines.append(f"{idx}. {record.display_name} - {record.total_requests} requests")
    return "\n".join(lines)
