from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Callable

from traffic_coordinator.logging_setup import get_logger
from traffic_coordinator.storage.ranking import RankingStore
from traffic_coordinator.storage.store import PersistenceError

FanOut = Callable[[list[int], str], int]


def seconds_until_next(now: datetime, hour: int, minute: int) -> float:
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class DailyResetScheduler:
    def __init__(
        self,
        *,
        ranking: RankingStore,
        fan_out: FanOut,
        reset_message: str,
        reset_time: tuple[int, int] = (0, 0),
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.ranking = ranking
        self.fan_out = fan_out
        self.reset_message = reset_message
        self.reset_time = reset_time
        self.now = now
        self.logger = get_logger(__name__)
        self._task: asyncio.Task[None] | None = None

    def run_reset(self) -> int:
        """Reset the ranking and notify every known user. Returns deliveries."""
        try:
            user_ids = self.ranking.reset_all()
        except PersistenceError as exc:
            self.logger.error("Daily ranking reset failed: %s", exc)
            return 0
        delivered = self.fan_out(user_ids, self.reset_message)
        self.logger.info(
            "Daily ranking reset done; notified %d/%d user(s).", delivered, len(user_ids)
        )
        return delivered

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="daily-ranking-reset"
        )
        hour, minute = self.reset_time
        self.logger.info("Daily ranking reset scheduled at %02d:%02d local time.", hour, minute)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self) -> None:
        hour, minute = self.reset_time
        while True:
            delay = seconds_until_next(self.now(), hour, minute)
            self.logger.debug("Next ranking reset in %.0f seconds.", delay)
            await asyncio.sleep(delay)
            self.run_reset()
