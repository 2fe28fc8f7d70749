"""Periodic eviction of inactive participants.

Every tick finds participants whose last heartbeat is older than the
inactivity threshold, records a "left the room" status message for each and
then deletes them. The departure messages are always written before the
participants are removed; a failure in between leaves departure messages
without a matching eviction, which the next tick completes.
"""
import asyncio
import time
from typing import List, Optional

from starlette.concurrency import run_in_threadpool

from .clock import Clock
from .errors import StorageError
from .logging_utils import log_event, logger
from .messages import LEAVE_TEXT, build_status_message
from .metrics import observe_sweep
from .storage import Store


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


class PresenceSweeper:
    def __init__(
        self,
        store: Store,
        clock: Clock,
        broadcast: str,
        interval: float = 1.0,
        threshold: float = 10.0,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if threshold < 0:
            raise ValueError("threshold must not be negative")
        self.store = store
        self.clock = clock
        self.broadcast = broadcast
        self.interval = interval
        self.threshold = threshold
        self._task: Optional[asyncio.Task] = None

    def tick(self) -> List[str]:
        """Run one sweep and return the names that were evicted."""
        started = time.perf_counter()
        now = self.clock.now()
        cutoff = now - self.threshold
        try:
            stale = self.store.participants.find_stale(cutoff)
            names = [p.name for p in stale]
            if names:
                self.store.messages.insert_many(
                    [build_status_message(name, LEAVE_TEXT, self.broadcast, now) for name in names]
                )
                self.store.participants.delete_stale(cutoff, names)
        except StorageError as exc:
            observe_sweep(_elapsed_ms(started), 0, failed=True)
            log_event("error", "sweep_failed", error=str(exc.__cause__ or exc))
            return []

        observe_sweep(_elapsed_ms(started), len(names))
        for name in names:
            log_event("info", "participant_evicted", name=name)
        return names

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await run_in_threadpool(self.tick)
            except Exception:
                logger.exception("unexpected error in presence sweep")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
