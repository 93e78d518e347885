from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

from sqlguard.core.logger import get_logger

log = get_logger(__name__)


PeriodicCallable = Callable[[], Awaitable[None]]


class PeriodicScheduler:
    """Fixed-interval periodic task scheduler.

    schedule(coro_func, interval) starts a run every `interval` seconds until
    stop() is called. Each run is its own task, optionally bounded by a
    timeout, so a slow run never delays or skips the following ones.
    """

    def __init__(self) -> None:
        self._loops: list[asyncio.Task] = []
        self._runs: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        self._running = False
        tasks = self._loops + list(self._runs)
        for t in tasks:
            t.cancel()
        for t in tasks:
            try:
                await t
            except asyncio.CancelledError:
                pass
            except Exception:
                log.exception("Periodic task raised during shutdown")
        self._loops.clear()
        self._runs.clear()

    async def _run_once(self, func: PeriodicCallable, timeout: Optional[float], name: str) -> None:
        try:
            if timeout is not None:
                await asyncio.wait_for(func(), timeout=timeout)
            else:
                await func()
        except asyncio.TimeoutError:
            log.warning("Periodic task %s exceeded %.2fs", name, timeout)
        except Exception:
            log.exception("Periodic task %s failed", name)

    def schedule(
        self,
        func: PeriodicCallable,
        interval_sec: float,
        timeout: Optional[float] = None,
        name: str = "periodic",
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be positive")

        async def _loop() -> None:
            loop = asyncio.get_running_loop()
            next_run = loop.time()
            while self._running:
                run = asyncio.create_task(self._run_once(func, timeout, name), name=f"{name}-run")
                self._runs.add(run)
                run.add_done_callback(self._runs.discard)
                next_run += interval_sec
                delay = next_run - loop.time()
                if delay < 0:
                    # the loop itself fell behind; realign instead of bursting
                    next_run = loop.time()
                    delay = 0.0
                await asyncio.sleep(delay)

        task = asyncio.create_task(_loop(), name=f"{name}-loop")
        self._loops.append(task)


_scheduler: Optional[PeriodicScheduler] = None


def get_scheduler() -> PeriodicScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = PeriodicScheduler()
    return _scheduler
