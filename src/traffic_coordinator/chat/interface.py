from __future__ import annotations

from threading import Lock
from typing import Callable

from traffic_coordinator.chat.messages import (
    render_ended,
    render_queued,
    render_ranking,
    render_rejected,
    render_started,
    render_status_update,
    render_summary,
)
from traffic_coordinator.chat.notifier import Notifier
from traffic_coordinator.coordinator.outcomes import (
    Ended,
    Queued,
    Rejected,
    SessionSnapshot,
    Started,
)
from traffic_coordinator.coordinator.session_coordinator import SessionCoordinator
from traffic_coordinator.logging_setup import get_logger
from traffic_coordinator.storage.models import END_REASON_EXPIRED

ACTION_START_SESSION = "start_session"
ACTION_END_SESSION = "end_session"
ACTION_RANK = "rank"
CHAT_ACTIONS = (ACTION_START_SESSION, ACTION_END_SESSION, ACTION_RANK)


class UnknownActionError(ValueError):
    pass


class ChatInterface:
    """Turns chat actions into coordinator calls and renders the outcomes.

    Also listens to the coordinator: status updates replace the previous one
    per recipient, and promotion or expiry notices go out through the notifier.
    """

    def __init__(
        self,
        *,
        coordinator: SessionCoordinator,
        notifier: Notifier,
        ranking_limit: int = 5,
    ) -> None:
        self.coordinator = coordinator
        self.notifier = notifier
        self.ranking_limit = ranking_limit
        self.logger = get_logger(__name__)
        self._status_messages: dict[int, str] = {}
        self._lock = Lock()
        coordinator.listener = self

    def handle(self, action: str, *, user_id: int, display_name: str) -> str:
        handlers: dict[str, Callable[[], str]] = {
            ACTION_START_SESSION: lambda: self.start_session(user_id, display_name),
            ACTION_END_SESSION: lambda: self.end_session(user_id),
            ACTION_RANK: self.rank,
        }
        handler = handlers.get(action)
        if handler is None:
            raise UnknownActionError(f"Unknown chat action: {action!r}")
        self.logger.debug("Chat action=%s user=%s", action, user_id)
        return handler()

    def start_session(self, user_id: int, display_name: str) -> str:
        outcome = self.coordinator.start(user_id, display_name)
        if isinstance(outcome, Queued):
            return render_queued(outcome)
        return render_started(outcome)

    def end_session(self, user_id: int) -> str:
        outcome = self.coordinator.end(user_id)
        if isinstance(outcome, Rejected):
            return render_rejected(outcome)
        return f"{render_ended(outcome)}\n\nThe session was ended by its owner."

    def rank(self) -> str:
        return render_ranking(self.coordinator.rank(self.ranking_limit))

    def notify_all(self, user_ids: list[int], text: str) -> int:
        delivered = 0
        for user_id in user_ids:
            try:
                self.notifier.send(user_id, text)
            except Exception as exc:
                self.logger.warning("Notification to user=%s failed: %s", user_id, exc)
                continue
            delivered += 1
        return delivered

    # Coordinator listener

    def status_update(self, snapshot: SessionSnapshot) -> None:
        recipient = snapshot.owner_id
        with self._lock:
            previous = self._status_messages.pop(recipient, None)
        if previous is not None and not self.notifier.delete(recipient, previous):
            self.logger.debug("Previous status message already gone recipient=%s", recipient)
        message_id = self.notifier.send(recipient, render_status_update(snapshot))
        with self._lock:
            self._status_messages[recipient] = message_id

    def session_finalized(self, ended: Ended) -> None:
        with self._lock:
            self._status_messages.pop(ended.record.owner_id, None)
        if ended.record.end_reason == END_REASON_EXPIRED:
            self.notifier.send(ended.record.owner_id, render_summary(ended.record))

    def session_promoted(self, started: Started) -> None:
        self.notifier.send(
            started.session.owner_id,
            "Your turn has come.\n\n" + render_started(started),
        )
