from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

log = logging.getLogger("scheduler")


class IntervalScheduler:
    """Runs ``job`` at startup and then every ``interval_s``; never two runs at once."""

    def __init__(self, interval_s: float, job: Callable[[], Awaitable[object]], *, name: str = "scan"):
        self.interval_s = float(interval_s)
        self.job = job
        self.name = name
        self.runs = 0
        self.skipped = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> bool:
        """Start a run unless the previous one is still going. Returns True if started."""
        if self.running:
            self.skipped += 1
            log.warning("tick_skipped name=%s reason=previous_run_active skipped=%d", self.name, self.skipped)
            return False
        self._task = asyncio.ensure_future(self._run_job())
        return True

    async def _run_job(self) -> None:
        self.runs += 1
        try:
            await self.job()
        except Exception as e:
            log.exception("job_failed name=%s run=%d err=%s", self.name, self.runs, e)

    async def run_forever(self) -> None:
        log.info("scheduler_start name=%s interval_s=%.0f", self.name, self.interval_s)
        try:
            while True:
                self.tick()
                await asyncio.sleep(self.interval_s)
        finally:
            if self.running:
                self._task.cancel()
