from __future__ import annotations

import hmac
import time
from threading import RLock
from typing import Callable, Protocol

from traffic_coordinator.config import AppConfig
from traffic_coordinator.coordinator.broadcaster import StatusBroadcaster, TickCallback
from traffic_coordinator.coordinator.outcomes import (
    REJECT_NO_ACTIVE_SESSION,
    REJECT_NOT_OWNER,
    Accepted,
    EndOutcome,
    Ended,
    HitOutcome,
    Queued,
    Rejected,
    RejectedNoSession,
    RejectedPathMismatch,
    SessionSnapshot,
    StartOutcome,
    Started,
)
from traffic_coordinator.coordinator.queue import QueueEntry, WaitingQueue
from traffic_coordinator.logging_setup import get_logger
from traffic_coordinator.storage.models import (
    END_REASON_ENDED,
    END_REASON_EXPIRED,
    STATUS_ACTIVE,
    STATUS_ENDING,
    HistoryRecord,
    Session,
)
from traffic_coordinator.storage.ranking import RankingStore
from traffic_coordinator.storage.store import PersistenceError, PersistenceStore
from traffic_coordinator.tokens import TokenGenerator

STATE_IDLE = "idle"


class BroadcasterFactory(Protocol):
    def __call__(
        self, *, generation: int, interval_seconds: float, on_tick: TickCallback
    ) -> StatusBroadcaster: ...


class CoordinatorListener(Protocol):
    def status_update(self, snapshot: SessionSnapshot) -> None: ...

    def session_finalized(self, ended: Ended) -> None: ...

    def session_promoted(self, started: Started) -> None: ...


class NullListener:
    def status_update(self, snapshot: SessionSnapshot) -> None:
        return None

    def session_finalized(self, ended: Ended) -> None:
        return None

    def session_promoted(self, started: Started) -> None:
        return None


class SessionCoordinator:
    """Owns the single session slot, its waiting queue and its status timer.

    Every public operation runs as one critical section under ``_lock``.
    Cancelling the timer and clearing the slot happen in the same section,
    and timer ticks carry the generation they were scheduled for, so a tick
    for a superseded session is a no-op.
    """

    def __init__(
        self,
        *,
        store: PersistenceStore,
        ranking: RankingStore | None = None,
        tokens: TokenGenerator | None = None,
        duration_seconds: float = 200.0,
        status_interval_seconds: float = 5.0,
        domain: str = "",
        listener: CoordinatorListener | None = None,
        clock: Callable[[], float] = time.time,
        broadcaster_factory: BroadcasterFactory | None = None,
    ) -> None:
        self.store = store
        self.ranking = ranking or RankingStore(store)
        self.tokens = tokens or TokenGenerator()
        self.duration_seconds = duration_seconds
        self.status_interval_seconds = status_interval_seconds
        self.domain = domain
        self.listener: CoordinatorListener = listener or NullListener()
        self.clock = clock
        self._broadcaster_factory: BroadcasterFactory = broadcaster_factory or StatusBroadcaster
        self.logger = get_logger(__name__)

        self._lock = RLock()
        self._session: Session | None = None
        self._queue = WaitingQueue()
        self._broadcaster: StatusBroadcaster | None = None
        self._generation = 0

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        *,
        store: PersistenceStore,
        listener: CoordinatorListener | None = None,
    ) -> SessionCoordinator:
        return cls(
            store=store,
            tokens=TokenGenerator(
                prefix=config.session.token_prefix,
                num_bytes=config.session.token_bytes,
            ),
            duration_seconds=config.session.duration_seconds,
            status_interval_seconds=config.session.status_interval_seconds,
            domain=config.session.domain,
            listener=listener,
        )

    @property
    def state(self) -> str:
        with self._lock:
            return self._session.status if self._session else STATE_IDLE

    @property
    def generation(self) -> int:
        return self._generation

    def waiting(self) -> list[QueueEntry]:
        with self._lock:
            return self._queue.snapshot()

    # Persistence helpers: failures are logged and reported, never fatal.

    def _persist(self, what: str, action: Callable[[], object]) -> bool:
        try:
            action()
        except PersistenceError as exc:
            self.logger.error("Storage degraded while saving %s: %s", what, exc)
            return False
        return True

    def _notify(self, event: str, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            self.logger.exception("Listener failed handling %s event.", event)

    # Transitions

    def _open_session(self, requester_id: int, display_name: str) -> Started:
        self._generation += 1
        session = Session(
            owner_id=requester_id,
            display_name=display_name,
            secret_path=self.tokens.generate(),
            started_at=self.clock(),
            duration_seconds=self.duration_seconds,
            domain=self.domain,
            generation=self._generation,
        )
        self._session = session
        ok = self._persist("user registry", lambda: self.store.add_user(requester_id))
        ok = self._persist("active session", lambda: self.store.save_active_session(session)) and ok
        self._start_broadcaster(session)
        self.logger.info(
            "Session started owner=%s generation=%d duration=%.0fs",
            requester_id,
            session.generation,
            session.duration_seconds,
        )
        return Started(
            session=SessionSnapshot.of(session, now=self.clock()),
            storage_degraded=not ok,
        )

    def _start_broadcaster(self, session: Session) -> None:
        broadcaster = self._broadcaster_factory(
            generation=session.generation,
            interval_seconds=self.status_interval_seconds,
            on_tick=self.tick,
        )
        self._broadcaster = broadcaster
        broadcaster.start()

    def _stop_broadcaster(self) -> None:
        broadcaster = self._broadcaster
        self._broadcaster = None
        if broadcaster is not None:
            broadcaster.cancel()

    def _finalize(self, end_reason: str) -> Ended:
        session = self._session
        assert session is not None
        self._stop_broadcaster()
        session.status = STATUS_ENDING
        ok = self._persist("ending session", lambda: self.store.save_active_session(session))

        record = HistoryRecord.from_session(session, ended_at=self.clock(), end_reason=end_reason)
        ok = self._persist("history", lambda: self.ranking.append(record)) and ok
        ok = self._persist("session result", lambda: self.store.write_result(record)) and ok

        self._session = None
        ok = self._persist("cleared session", lambda: self.store.save_active_session(None)) and ok
        self.logger.info(
            "Session finalized owner=%s generation=%d total_requests=%d reason=%s",
            record.owner_id,
            session.generation,
            record.total_requests,
            end_reason,
        )

        promoted: Started | None = None
        entry = self._queue.dequeue()
        if entry is not None:
            self.logger.info(
                "Promoting queued requester=%s (%d still waiting).",
                entry.requester_id,
                len(self._queue),
            )
            promoted = self._open_session(entry.requester_id, entry.display_name)

        ended = Ended(record=record, promoted=promoted, storage_degraded=not ok)
        self._notify("session_finalized", lambda: self.listener.session_finalized(ended))
        if promoted is not None:
            self._notify("session_promoted", lambda: self.listener.session_promoted(promoted))
        return ended

    # Operations

    def start(self, requester_id: int, display_name: str) -> StartOutcome:
        with self._lock:
            session = self._session
            if session is None:
                return self._open_session(requester_id, display_name)
            if session.owner_id == requester_id and session.status == STATUS_ACTIVE:
                return Started(
                    session=SessionSnapshot.of(session, now=self.clock()),
                    already_active=True,
                )
            existing = self._queue.position_of(requester_id)
            if existing is not None:
                return Queued(position=existing, already_waiting=True)
            position = self._queue.enqueue(QueueEntry(requester_id, display_name, self.clock()))
            self.logger.info("Requester=%s queued at position %d.", requester_id, position)
            return Queued(position=position)

    def end(self, requester_id: int) -> EndOutcome:
        with self._lock:
            session = self._session
            if session is None or session.status != STATUS_ACTIVE:
                self.logger.debug("End rejected for requester=%s: no active session.", requester_id)
                return Rejected(reason=REJECT_NO_ACTIVE_SESSION)
            if session.owner_id != requester_id:
                self.logger.debug(
                    "End rejected for requester=%s: session owned by %s.",
                    requester_id,
                    session.owner_id,
                )
                return Rejected(reason=REJECT_NOT_OWNER)
            return self._finalize(END_REASON_ENDED)

    def record_hit(self, path: str) -> HitOutcome:
        candidate = path.encode("utf-8", "surrogatepass")
        with self._lock:
            session = self._session
            if session is None or session.status != STATUS_ACTIVE:
                return RejectedNoSession()
            if not hmac.compare_digest(candidate, session.secret_path.encode("utf-8")):
                return RejectedPathMismatch()
            session.request_count += 1
            ok = self._persist("hit count", lambda: self.store.save_active_session(session))
            self.logger.debug("Hit accepted count=%d", session.request_count)
            return Accepted(request_count=session.request_count, storage_degraded=not ok)

    def status(self) -> SessionSnapshot | None:
        with self._lock:
            if self._session is None:
                return None
            return SessionSnapshot.of(self._session, now=self.clock())

    def rank(self, limit: int) -> list[HistoryRecord]:
        return self.ranking.top_n(limit)

    def tick(self, generation: int) -> bool:
        """Timer callback. Returns False once the broadcaster should stop."""
        with self._lock:
            session = self._session
            if session is None or session.generation != generation:
                self.logger.debug("Ignoring stale status tick generation=%d.", generation)
                return False
            if session.status != STATUS_ACTIVE:
                return False
            if session.remaining_seconds(self.clock()) <= 0:
                self._finalize(END_REASON_EXPIRED)
                return False
            snapshot = SessionSnapshot.of(session, now=self.clock())
            self._notify("status_update", lambda: self.listener.status_update(snapshot))
            return True

    def restore(self) -> SessionSnapshot | None:
        """Reload the persisted session after a restart and resume its timer."""
        with self._lock:
            if self._session is not None:
                return SessionSnapshot.of(self._session, now=self.clock())
            session = self.store.load_active_session()
            if session is None:
                return None
            self._generation += 1
            session.generation = self._generation
            self._session = session
            if session.status == STATUS_ENDING:
                self._resume_interrupted_finalize(session)
                return None
            self._start_broadcaster(session)
            self.logger.info(
                "Restored session owner=%s count=%d remaining=%.0fs",
                session.owner_id,
                session.request_count,
                session.remaining_seconds(self.clock()),
            )
            return SessionSnapshot.of(session, now=self.clock())

    def _resume_interrupted_finalize(self, session: Session) -> None:
        already_recorded = any(
            item.secret_path == session.secret_path for item in self.ranking.all()
        )
        if already_recorded:
            self.logger.warning(
                "Found session owner=%s mid-finalize with history already written; clearing slot.",
                session.owner_id,
            )
            self._session = None
            self._persist("cleared session", lambda: self.store.save_active_session(None))
            return
        self.logger.warning(
            "Found session owner=%s mid-finalize; completing it now.", session.owner_id
        )
        overdue = session.remaining_seconds(self.clock()) <= 0
        session.status = STATUS_ACTIVE
        self._finalize(END_REASON_EXPIRED if overdue else END_REASON_ENDED)

    def shutdown(self) -> None:
        with self._lock:
            self._stop_broadcaster()
