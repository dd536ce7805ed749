from __future__ import annotations

from collections import OrderedDict, deque
from dataclasses import dataclass
from itertools import count
from threading import Lock
from typing import Protocol


class Notifier(Protocol):
    def send(self, recipient_id: int, text: str) -> str: ...

    def delete(self, recipient_id: int, message_id: str) -> bool: ...


@dataclass(frozen=True)
class OutboxMessage:
    message_id: str
    text: str


class OutboxNotifier:
    """In-process mailbox per recipient; the chat front end polls it."""

    def __init__(self, *, history_size: int = 20, max_recipients: int = 4096) -> None:
        self._history_size = max(1, history_size)
        self._max_recipients = max(64, max_recipients)
        self._messages: OrderedDict[int, deque[OutboxMessage]] = OrderedDict()
        self._ids = count(1)
        self._lock = Lock()

    def send(self, recipient_id: int, text: str) -> str:
        with self._lock:
            message = OutboxMessage(message_id=str(next(self._ids)), text=text)
            box = self._messages.get(recipient_id)
            if box is None:
                box = deque(maxlen=self._history_size)
                self._messages[recipient_id] = box
            box.append(message)
            self._messages.move_to_end(recipient_id)
            while len(self._messages) > self._max_recipients:
                self._messages.popitem(last=False)
            return message.message_id

    def delete(self, recipient_id: int, message_id: str) -> bool:
        with self._lock:
            box = self._messages.get(recipient_id)
            if not box:
                return False
            for message in list(box):
                if message.message_id == message_id:
                    box.remove(message)
                    return True
            return False

    def messages(self, recipient_id: int) -> list[OutboxMessage]:
        with self._lock:
            return list(self._messages.get(recipient_id, ()))
