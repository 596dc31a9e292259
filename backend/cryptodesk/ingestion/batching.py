from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from cryptodesk.ingestion.reconcile import ReconciliationWriter
from cryptodesk.ingestion.ttl_cache import TTLCache, candle_cache_key
from cryptodesk.schemas.crypto import AssetSnapshot, HistoricalCandle
from cryptodesk.schemas.provider import FetchError

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BatchPlan:
    index: int
    page: int
    per_page: int
    size: int


@dataclass
class FetchAttempt:
    number: int
    api_calls: int = 0
    last_error: FetchError | None = None
    batches_reconciled: int = 0


def partition(universe_size: int, batch_size: int) -> list[BatchPlan]:
    """Split the top ``universe_size`` coins into market-cap ordered pages."""
    if universe_size <= 0:
        return []
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    plans: list[BatchPlan] = []
    for index in range(math.ceil(universe_size / batch_size)):
        remaining = universe_size - index * batch_size
        plans.append(
            BatchPlan(
                index=index,
                page=index + 1,
                per_page=batch_size,
                size=min(batch_size, remaining),
            )
        )
    return plans


def stagger_delay(position: int, stagger_seconds: float) -> float:
    return position * stagger_seconds


class BatchOrchestrator:
    def __init__(
        self,
        provider,
        cache: TTLCache,
        writer: ReconciliationWriter,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.cache = cache
        self.writer = writer
        self.sleep = sleep

    async def _candles_for(
        self,
        asset: AssetSnapshot,
        position: int,
        attempt: FetchAttempt,
        lookback_days: int,
        stagger_seconds: float,
    ) -> list[HistoricalCandle] | FetchError:
        cache_key = candle_cache_key(asset.coin_id, lookback_days)
        cached, found = self.cache.get(cache_key)
        if found:
            logger.info("Using cached data for %s", asset.coin_id)
            return cached

        delay = stagger_delay(position, stagger_seconds)
        if delay > 0:
            await self.sleep(delay)

        response = await self.provider.fetch_ohlc(asset, lookback_days)
        attempt.api_calls += 1
        logger.info("Fetched OHLC for %s (API call #%d)", asset.coin_id, attempt.api_calls)
        if not response.ok:
            return response.error

        candles = list(response.data)
        self.cache.put(cache_key, candles)
        return candles

    async def run_batch(
        self,
        plan: BatchPlan,
        attempt: FetchAttempt,
        lookback_days: int,
        stagger_seconds: float,
    ) -> FetchError | None:
        logger.info(
            "Attempt %d: fetching market data (batch %d, page %d)",
            attempt.number,
            plan.index + 1,
            plan.page,
        )
        response = await self.provider.fetch_markets(page=plan.page, per_page=plan.per_page)
        attempt.api_calls += 1
        if not response.ok:
            return response.error
        logger.info("Market data fetched (API call #%d)", attempt.api_calls)

        snapshots: list[AssetSnapshot] = list(response.data)[: plan.size]
        results = await asyncio.gather(
            *(
                self._candles_for(asset, position, attempt, lookback_days, stagger_seconds)
                for position, asset in enumerate(snapshots)
            )
        )

        candles: list[HistoricalCandle] = []
        for result in results:
            if isinstance(result, FetchError):
                return result
            candles.extend(result)

        report = await self.writer.reconcile(snapshots, candles)
        if not report.ok:
            return report.error
        attempt.batches_reconciled += 1
        return None

    async def run_all(
        self,
        attempt: FetchAttempt,
        universe_size: int,
        batch_size: int,
        batch_delay: float,
        lookback_days: int,
        stagger_seconds: float,
    ) -> FetchError | None:
        plans = partition(universe_size, batch_size)
        for plan in plans:
            if plan.index > 0 and batch_delay > 0:
                logger.info("Waiting %.0fs before batch %d", batch_delay, plan.index + 1)
                await self.sleep(batch_delay)
            error = await self.run_batch(plan, attempt, lookback_days, stagger_seconds)
            if error is not None:
                attempt.last_error = error
                return error
        logger.info("Total API calls made: %d", attempt.api_calls)
        return None
