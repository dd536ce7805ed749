from __future__ import annotations

import asyncio
from typing import Callable

from traffic_coordinator.logging_setup import get_logger

TickCallback = Callable[[int], bool]


class StatusBroadcaster:
    """Recurring status tick for one session generation.

    Every ``interval_seconds`` the callback is invoked with the generation it
    was scheduled for; the task stops when the callback returns False or when
    ``cancel()`` is called.
    """

    def __init__(self, *, generation: int, interval_seconds: float, on_tick: TickCallback) -> None:
        self.generation = generation
        self.interval_seconds = interval_seconds
        self._on_tick = on_tick
        self._cancelled = False
        self._task: asyncio.Task[None] | None = None
        self.logger = get_logger(__name__)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._cancelled or self.running:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(
            self._run(), name=f"status-broadcaster-{self.generation}"
        )
        self.logger.debug(
            "Status broadcaster started generation=%d interval=%.1fs",
            self.generation,
            self.interval_seconds,
        )

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        task = self._task
        if task is not None and not task.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            # A tick that ends the session cancels its own broadcaster; let it return.
            if task is not current:
                task.cancel()
        self.logger.debug("Status broadcaster cancelled generation=%d", self.generation)

    async def _run(self) -> None:
        try:
            while not self._cancelled:
                await asyncio.sleep(self.interval_seconds)
                if self._cancelled:
                    break
                try:
                    keep_going = self._on_tick(self.generation)
                except Exception:
                    self.logger.exception(
                        "Status tick failed generation=%d; stopping broadcaster.",
                        self.generation,
                    )
                    break
                if not keep_going:
                    break
        except asyncio.CancelledError:
            pass
        finally:
            self._cancelled = True
