from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable

from traffic_coordinator.logging_setup import get_logger
from traffic_coordinator.storage.models import HistoryRecord, Session

ACTIVE_SESSION_FILE = "active_session.json"
HISTORY_FILE = "session_history.json"
USERS_FILE = "users.json"
RESULTS_DIR = "results"


class PersistenceError(RuntimeError):
    """A durable write or read kept failing after all retries."""

    def __init__(self, record: str, cause: BaseException) -> None:
        super().__init__(f"Persistence failed for '{record}': {cause.__class__.__name__}: {cause}")
        self.record = record
        self.cause = cause


@dataclass
class StoreStatus:
    data_directory: str
    writes: int = 0
    failed_writes: int = 0
    corrupt_records: int = 0
    last_error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "data_directory": self.data_directory,
            "writes": self.writes,
            "failed_writes": self.failed_writes,
            "corrupt_records": self.corrupt_records,
            "last_error": self.last_error,
        }


class PersistenceStore:
    """JSON-file storage for the active session, the history log and the user registry.

    Each record is rewritten in full through a temp file and an atomic rename,
    and writes to the same record are serialized by a per-record lock.
    Unreadable records are moved aside and treated as empty.
    """

    def __init__(
        self,
        root_path: Path,
        *,
        write_retries: int = 3,
        retry_backoff_seconds: float = 0.05,
    ) -> None:
        self.root_path = root_path
        self.root_path.mkdir(parents=True, exist_ok=True)
        self.write_retries = max(1, write_retries)
        self.retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self.status = StoreStatus(data_directory=str(root_path))
        self.logger = get_logger(__name__)
        self._locks: dict[str, Lock] = {
            ACTIVE_SESSION_FILE: Lock(),
            HISTORY_FILE: Lock(),
            USERS_FILE: Lock(),
            RESULTS_DIR: Lock(),
        }

    @property
    def active_session_path(self) -> Path:
        return self.root_path / ACTIVE_SESSION_FILE

    @property
    def history_path(self) -> Path:
        return self.root_path / HISTORY_FILE

    @property
    def users_path(self) -> Path:
        return self.root_path / USERS_FILE

    def result_path(self, owner_id: int) -> Path:
        return self.root_path / RESULTS_DIR / f"{owner_id}_requests.json"

    def _with_retries(self, record: str, operation: Callable[[], None]) -> None:
        last_error: Exception | None = None
        for attempt in range(1, self.write_retries + 1):
            try:
                operation()
                self.status.writes += 1
                return
            except OSError as exc:
                last_error = exc
                self.logger.warning(
                    "Write attempt %d/%d failed for %s: %s",
                    attempt,
                    self.write_retries,
                    record,
                    exc.__class__.__name__,
                )
                if attempt < self.write_retries and self.retry_backoff_seconds:
                    time.sleep(self.retry_backoff_seconds)
        assert last_error is not None
        self.status.failed_writes += 1
        error = PersistenceError(record, last_error)
        self.status.last_error = str(error)
        raise error

    @staticmethod
    def _write_json(path: Path, payload: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(payload, indent=2, ensure_ascii=True), encoding="utf-8")
        temp_path.replace(path)

    def _quarantine(self, path: Path, reason: str) -> None:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        target = path.with_name(f"{path.name}.corrupt-{stamp}")
        self.status.corrupt_records += 1
        self.logger.warning(
            "Stored record unreadable path=%s reason=%s; treating it as empty (moved to %s).",
            path,
            reason,
            target.name,
        )
        try:
            path.replace(target)
        except OSError as exc:
            self.logger.warning("Could not move corrupt record aside path=%s: %s", path, exc)

    def _read_json(self, path: Path, *, strict: bool = False) -> Any | None:
        if not path.exists():
            return None
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as exc:
            if strict:
                # A rewrite built on a failed read would drop the existing record.
                error = PersistenceError(path.name, exc)
                self.status.last_error = str(error)
                raise error from exc
            self.status.last_error = f"read {path.name}: {exc.__class__.__name__}"
            self.logger.error("Stored record unreadable path=%s: %s", path, exc)
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            self._quarantine(path, f"invalid JSON ({exc})")
            return None

    # Active session

    def load_active_session(self) -> Session | None:
        with self._locks[ACTIVE_SESSION_FILE]:
            payload = self._read_json(self.active_session_path)
            if payload is None:
                return None
            try:
                if not isinstance(payload, dict):
                    raise TypeError("expected an object")
                return Session.from_dict(payload)
            except (KeyError, TypeError, ValueError) as exc:
                self._quarantine(self.active_session_path, f"invalid session ({exc})")
                return None

    def save_active_session(self, session: Session | None) -> None:
        path = self.active_session_path

        def _write() -> None:
            if session is None:
                path.unlink(missing_ok=True)
            else:
                self._write_json(path, session.as_dict())

        with self._locks[ACTIVE_SESSION_FILE]:
            self._with_retries(ACTIVE_SESSION_FILE, _write)

    # History log

    def _load_history_unlocked(self, *, strict: bool = False) -> list[HistoryRecord]:
        payload = self._read_json(self.history_path, strict=strict)
        if payload is None:
            return []
        try:
            if not isinstance(payload, list):
                raise TypeError("expected a list")
            return [HistoryRecord.from_dict(item) for item in payload]
        except (KeyError, TypeError, ValueError) as exc:
            self._quarantine(self.history_path, f"invalid history ({exc})")
            return []

    def load_history(self) -> list[HistoryRecord]:
        with self._locks[HISTORY_FILE]:
            return self._load_history_unlocked()

    def append_history(self, record: HistoryRecord) -> None:
        with self._locks[HISTORY_FILE]:
            records = self._load_history_unlocked(strict=True)
            records.append(record)
            payload = [item.as_dict() for item in records]
            self._with_retries(HISTORY_FILE, lambda: self._write_json(self.history_path, payload))

    def clear_history(self) -> None:
        with self._locks[HISTORY_FILE]:
            self._with_retries(HISTORY_FILE, lambda: self._write_json(self.history_path, []))

    # User registry

    def _load_users_unlocked(self, *, strict: bool = False) -> set[int]:
        payload = self._read_json(self.users_path, strict=strict)
        if payload is None:
            return set()
        try:
            if not isinstance(payload, list):
                raise TypeError("expected a list")
            return {int(item) for item in payload}
        except (TypeError, ValueError) as exc:
            self._quarantine(self.users_path, f"invalid user registry ({exc})")
            return set()

    def load_users(self) -> set[int]:
        with self._locks[USERS_FILE]:
            return self._load_users_unlocked()

    def add_user(self, user_id: int) -> bool:
        with self._locks[USERS_FILE]:
            users = self._load_users_unlocked(strict=True)
            if user_id in users:
                return False
            users.add(user_id)
            payload = sorted(users)
            self._with_retries(USERS_FILE, lambda: self._write_json(self.users_path, payload))
            return True

    # Per-owner last result

    def write_result(self, record: HistoryRecord) -> Path:
        path = self.result_path(record.owner_id)
        with self._locks[RESULTS_DIR]:
            self._with_retries(RESULTS_DIR, lambda: self._write_json(path, record.as_dict()))
        return path
