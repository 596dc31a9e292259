from __future__ import annotations

import asyncio
import logging

from cryptodesk.ingestion.batching import BatchOrchestrator, FetchAttempt, Sleep
from cryptodesk.ingestion.ttl_cache import TTLCache
from cryptodesk.schemas.crypto import IngestionResult
from cryptodesk.schemas.provider import ErrorKind, FetchError

logger = logging.getLogger(__name__)


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Seconds to wait after failed ``attempt`` (1-indexed)."""
    return base_delay * 2 ** (attempt - 1)


def next_delay(attempt: int, retries: int, kind: ErrorKind, base_delay: float) -> float | None:
    """Wait before the next attempt, or None when the budget is spent.

    Every error kind draws on the same budget; a rate-limited provider and
    a flaky network are both worth another full attempt.
    """
    if attempt >= retries:
        return None
    return backoff_delay(base_delay, attempt)


class RetryController:
    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        cache: TTLCache,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.orchestrator = orchestrator
        self.cache = cache
        self.sleep = sleep

    async def run(
        self,
        retries: int,
        base_delay: float,
        universe_size: int,
        batch_size: int,
        batch_delay: float,
        lookback_days: int,
        stagger_seconds: float,
    ) -> IngestionResult:
        retries = max(1, retries)
        last_error: FetchError | None = None
        api_calls = 0

        for number in range(1, retries + 1):
            attempt = FetchAttempt(number=number)
            error = await self.orchestrator.run_all(
                attempt,
                universe_size=universe_size,
                batch_size=batch_size,
                batch_delay=batch_delay,
                lookback_days=lookback_days,
                stagger_seconds=stagger_seconds,
            )
            api_calls += attempt.api_calls
            if error is None:
                logger.info("Crypto data updated successfully (attempt %d)", number)
                return IngestionResult(success=True, attempts=number, api_calls=api_calls)

            last_error = error
            logger.error("Attempt %d failed: %s", number, error.model_dump(mode="json"))
            delay = next_delay(number, retries, error.kind, base_delay)
            if delay is None:
                break
            logger.info("Waiting %.0fs before retry...", delay)
            await self.sleep(delay)

        logger.error("Max retries reached, aborting fetch")
        if self.cache.has_fresh_entry():
            logger.warning("Serving cached candles after %d failed attempts", retries)
            return IngestionResult(
                success=True,
                error=last_error,
                used_fallback_cache=True,
                attempts=retries,
                api_calls=api_calls,
            )
        return IngestionResult(
            success=False, error=last_error, attempts=retries, api_calls=api_calls
        )
