"""Analysis scheduler — one run at startup, then one per interval, never overlapping.

Ticks fire at a fixed rate (start, start + interval, start + 2·interval, …).
A tick that finds the previous run still in progress is skipped and counted;
it is never queued and never starts a second concurrent run.

Owned by the FastAPI lifespan:
    scheduler.start()       # after the stores are ready
    ...
    await scheduler.stop()  # cancels the tick loop and any in-flight run
"""

from __future__ import annotations

import asyncio
from typing import Optional

from warden.analysis.analyzer import AnalysisRun, ThreatAnalyzer
from warden.utils.logger import get_logger

logger = get_logger(__name__)


class AnalysisScheduler:
    def __init__(self, analyzer: ThreatAnalyzer, interval_s: float) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self._analyzer = analyzer
        self._interval_s = interval_s
        self._lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._current: Optional[asyncio.Task[Optional[AnalysisRun]]] = None
        self.last_run: Optional[AnalysisRun] = None
        self.completed_runs: int = 0
        self.skipped_ticks: int = 0

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    async def run_once(self) -> Optional[AnalysisRun]:
        """Run the analyzer now unless a run is already in progress.

        Returns the finished AnalysisRun, or None when skipped.
        """
        if self._lock.locked():
            self.skipped_ticks += 1
            logger.warning("analysis_tick_skipped", reason="previous run still in progress")
            return None
        async with self._lock:
            try:
                run = await self._analyzer.run()
            except Exception as exc:
                # ThreatAnalyzer.run() reduces its own errors; this is a last line.
                logger.exception("analysis_run_escaped", error_type=type(exc).__name__)
                return None
            self.last_run = run
            self.completed_runs += 1
            return run

    def start(self) -> None:
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._tick_loop(), name="warden-analysis-scheduler")
        logger.info("analysis_scheduler_started", interval_s=self._interval_s)

    async def stop(self) -> None:
        for task in (self._loop_task, self._current):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._loop_task = None
        self._current = None
        logger.info("analysis_scheduler_stopped", completed_runs=self.completed_runs)

    async def _tick_loop(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            self._tick()
            next_tick += self._interval_s
            await asyncio.sleep(max(0.0, next_tick - loop.time()))

    def _tick(self) -> None:
        if self._current is not None and not self._current.done():
            self.skipped_ticks += 1
            logger.warning("analysis_tick_skipped", reason="previous run still in progress")
            return
        self._current = asyncio.create_task(self.run_once(), name="warden-analysis-run")
