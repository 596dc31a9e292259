from __future__ import annotations

import asyncio

from cryptodesk.config.settings import settings
from cryptodesk.ingestion.service import build_ingestion_service
from cryptodesk.utils.logger import setup_logging


def run_ingestion_job(
    retries: int | None = None,
    base_delay: float | None = None,
    lookback_days: int | None = None,
    batch_size: int | None = None,
    batch_delay: float | None = None,
) -> dict:
    setup_logging(settings.log_level)
    service = build_ingestion_service()
    result = asyncio.run(
        service.run_ingestion(
            retries=retries,
            base_delay=base_delay,
            lookback_days=lookback_days,
            batch_size=batch_size,
            batch_delay=batch_delay,
        )
    )
    return result.model_dump(mode="json")
