"""
Cooperative scheduling primitives for timer-driven workers.

CycleGuard:
    Single-slot semaphore that lets a periodic callback detect that its
    previous run is still in progress and skip instead of overlapping.

PeriodicTask:
    Interval timer owning a stop token. Each tick spawns the callback as its
    own task (the next tick is never delayed by a slow callback), so overlap
    protection is the callback's responsibility via CycleGuard.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional, Set, Union

log = logging.getLogger("baristabot")

Interval = Union[float, Callable[[], float]]


class CycleGuard:
    """At most one holder at a time; try_acquire never waits."""

    def __init__(self) -> None:
        self._sem = asyncio.Semaphore(1)

    @property
    def busy(self) -> bool:
        return self._sem.locked()

    async def try_acquire(self) -> bool:
        if self._sem.locked():
            return False
        # an unlocked semaphore is acquired without suspending
        await self._sem.acquire()
        return True

    def release(self) -> None:
        self._sem.release()


class PeriodicTask:
    def __init__(
        self,
        name: str,
        callback: Callable[[], Awaitable[Any]],
        interval: Interval,
        stop_grace_sec: float = 30.0,
    ) -> None:
        self.name = name
        self._callback = callback
        self._interval = interval
        self._stop_grace = stop_grace_sec
        self._stop = asyncio.Event()
        self._timer: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def next_interval(self) -> float:
        if callable(self._interval):
            return max(0.0, float(self._interval()))
        return max(0.0, float(self._interval))

    def start(self) -> None:
        if self._timer is None:
            self._stop.clear()
            self._timer = asyncio.create_task(self._run(), name=f"timer:{self.name}")

    async def stop(self) -> None:
        """Stop ticking, then give the in-flight callback a grace period before cancelling it."""
        self._stop.set()
        if self._timer:
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
            self._timer = None
        if self._running:
            pending = set(self._running)
            _, still_running = await asyncio.wait(pending, timeout=self._stop_grace)
            for task in still_running:
                task.cancel()
            if still_running:
                log.warning(json.dumps({"event": "timer_callback_cancelled", "timer": self.name, "count": len(still_running)}))
                await asyncio.gather(*still_running, return_exceptions=True)

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.next_interval())
                break
            except asyncio.TimeoutError:
                pass
            self.ticks += 1
            task = asyncio.create_task(self._guarded(), name=f"tick:{self.name}")
            self._running.add(task)
            task.add_done_callback(self._running.discard)

    async def _guarded(self) -> None:
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log.error(json.dumps({"event": "timer_callback_error", "timer": self.name, "err": str(exc)}))
