"""
Background compaction of lapsed holds
"""

from typing import Optional
import asyncio
import logging

from seatkeeper.services.reservation_engine import ReservationEngine

logger = logging.getLogger(__name__)


class CompactionWorker:
    """
    Periodically rewrites expired holds to Available.

    Readers already treat an expired hold as Available, so skipping or
    delaying a run changes storage size only.
    """

    def __init__(self, engine: ReservationEngine, interval_seconds: float):
        self.engine = engine
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> int:
        return await self.engine.compact_expired()

    async def _run(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in compaction task: {type(e).__name__}: {e}")

    def start(self):
        if self.running:
            return
        logger.info(f"Starting hold compaction every {self.interval_seconds}s")
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Hold compaction stopped")
