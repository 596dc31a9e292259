"""Single entry point for a market ingestion run.

``IngestionService`` owns the candle cache and the run lock for the whole
process. Build it once at startup and hand it to the scheduler and the
read API; both then share one single-flight guard.
"""

from __future__ import annotations

import asyncio
import logging

from cryptodesk.config.settings import IngestionSettings
from cryptodesk.ingestion.batching import BatchOrchestrator, Sleep
from cryptodesk.ingestion.lock import RunLock
from cryptodesk.ingestion.reconcile import ReconciliationWriter
from cryptodesk.ingestion.retry import RetryController
from cryptodesk.ingestion.ttl_cache import TTLCache
from cryptodesk.schemas.crypto import IngestionResult

logger = logging.getLogger(__name__)


class IngestionService:
    def __init__(
        self,
        store,
        provider,
        config: IngestionSettings | None = None,
        cache: TTLCache | None = None,
        lock: RunLock | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or IngestionSettings()
        self.store = store
        self.provider = provider
        self.cache = cache if cache is not None else TTLCache(self.config.cache_ttl_seconds)
        self.lock = lock if lock is not None else RunLock()
        self.writer = ReconciliationWriter(store)
        self.orchestrator = BatchOrchestrator(provider, self.cache, self.writer, sleep=sleep)
        self.retry = RetryController(self.orchestrator, self.cache, sleep=sleep)

    async def run_ingestion(
        self,
        retries: int | None = None,
        base_delay: float | None = None,
        lookback_days: int | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        universe_size: int | None = None,
        stagger_seconds: float | None = None,
    ) -> IngestionResult:
        with self.lock.hold() as acquired:
            if not acquired:
                logger.info("Ingestion already running, skipping")
                return IngestionResult(success=False, skipped=True)

            config = self.config
            return await self.retry.run(
                retries=config.retries if retries is None else retries,
                base_delay=config.base_delay_seconds if base_delay is None else base_delay,
                universe_size=config.universe_size if universe_size is None else universe_size,
                batch_size=config.batch_size if batch_size is None else batch_size,
                batch_delay=config.batch_delay_seconds if batch_delay is None else batch_delay,
                lookback_days=config.lookback_days if lookback_days is None else lookback_days,
                stagger_seconds=(
                    config.stagger_seconds if stagger_seconds is None else stagger_seconds
                ),
            )


def build_ingestion_service(sleep: Sleep = asyncio.sleep) -> IngestionService:
    from cryptodesk.config.settings import settings
    from cryptodesk.db.session import AsyncSessionLocal
    from cryptodesk.db.store import SqlAlchemyStore
    from cryptodesk.providers.coingecko import CoinGeckoClient

    return IngestionService(
        store=SqlAlchemyStore(AsyncSessionLocal),
        provider=CoinGeckoClient(settings.provider),
        config=settings.ingestion,
        sleep=sleep,
    )
