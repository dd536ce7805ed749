from __future__ import annotations

from traffic_coordinator.chat.interface import CHAT_ACTIONS, ChatInterface, UnknownActionError
from traffic_coordinator.chat.notifier import Notifier, OutboxMessage, OutboxNotifier

__all__ = [
    "CHAT_ACTIONS",
    "ChatInterface",
    "Notifier",
    "OutboxMessage",
    "OutboxNotifier",
    "UnknownActionError",
]
