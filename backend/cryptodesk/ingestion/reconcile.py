from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from cryptodesk.db.store import InsertOutcome, StorageError
from cryptodesk.schemas.crypto import AssetSnapshot, HistoricalCandle
from cryptodesk.schemas.provider import FetchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileReport:
    snapshots_written: int = 0
    candles_inserted: int = 0
    duplicates_skipped: int = 0
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _storage_failure(exc: StorageError) -> FetchError:
    return FetchError(kind=exc.kind, message=str(exc), provider_code="storage")


class ReconciliationWriter:
    def __init__(self, store) -> None:
        self.store = store

    async def reconcile(
        self, snapshots: list[AssetSnapshot], candles: list[HistoricalCandle]
    ) -> ReconcileReport:
        upserted, appended = await asyncio.gather(
            self.store.upsert_snapshots(snapshots),
            self.store.insert_candles(candles),
            return_exceptions=True,
        )
        for outcome in (upserted, appended):
            if isinstance(outcome, StorageError):
                logger.error("Reconciliation failed: %s", outcome)
                return ReconcileReport(error=_storage_failure(outcome))
            if isinstance(outcome, BaseException):
                raise outcome

        inserted: InsertOutcome = appended
        if inserted.duplicates:
            logger.warning(
                "Some historical records already exist (skipped %d)", inserted.duplicates
            )
        return ReconcileReport(
            snapshots_written=upserted,
            candles_inserted=inserted.inserted,
            duplicates_skipped=inserted.duplicates,
        )
