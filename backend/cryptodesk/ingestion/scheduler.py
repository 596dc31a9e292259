from __future__ import annotations

import asyncio
import logging

from cryptodesk.ingestion.batching import Sleep
from cryptodesk.ingestion.service import IngestionService
from cryptodesk.schemas.crypto import IngestionResult

logger = logging.getLogger(__name__)


class IngestionScheduler:
    """Fires an ingestion run every ``interval_seconds``.

    Each tick runs in its own task, so a slow run never delays the clock;
    a tick that lands while a run is in flight is dropped.
    """

    def __init__(
        self,
        service: IngestionService,
        interval_seconds: float,
        run_on_startup: bool = False,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.service = service
        self.interval_seconds = interval_seconds
        self.run_on_startup = run_on_startup
        self.sleep = sleep
        self._loop_task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()

    async def tick(self) -> IngestionResult | None:
        if self.service.lock.held:
            logger.info("Previous ingestion still running, dropping tick")
            return None
        logger.info("Running crypto data fetch job...")
        try:
            return await self.service.run_ingestion()
        except Exception:
            logger.exception("Ingestion run crashed")
            return None

    def fire(self) -> asyncio.Task:
        task = asyncio.create_task(self.tick())
        self._ticks.add(task)
        task.add_done_callback(self._ticks.discard)
        return task

    async def run_forever(self) -> None:
        if self.run_on_startup:
            self.fire()
        while True:
            await self.sleep(self.interval_seconds)
            self.fire()

    def start(self) -> asyncio.Task:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self.run_forever())
            logger.info(
                "Crypto job scheduled to run every %.0f minutes", self.interval_seconds / 60
            )
        return self._loop_task

    async def stop(self) -> None:
        tasks = [task for task in (self._loop_task, *self._ticks) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loop_task = None
