"""Key-addressed persistence for snapshots and candles.

``upsert_snapshots`` replaces one ``cryptos`` row per coin id and
``insert_candles`` appends to ``historical_cryptos`` while skipping rows
whose (coin id, timestamp) pair already exists. Both support PostgreSQL
and SQLite dialects; anything else falls back to row-by-row savepoints.
"""

from __future__ import annotations

import datetime
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cryptodesk.db.models import Crypto, HistoricalCrypto
from cryptodesk.schemas.crypto import AssetSnapshot, HistoricalCandle
from cryptodesk.schemas.provider import ErrorKind


_SNAPSHOT_UPDATE_COLUMNS = (
    "name",
    "symbol",
    "current_price",
    "market_cap",
    "price_change_24h",
    "last_updated",
)
_CANDLE_KEY = ("coin_id", "timestamp")


class StorageError(Exception):
    def __init__(self, message: str, kind: ErrorKind = ErrorKind.STORAGE_FATAL) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class InsertOutcome:
    inserted: int = 0
    duplicates: int = 0


def _insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        return postgresql.insert
    if dialect_name == "sqlite":
        return sqlite.insert
    return None


def snapshot_rows(snapshots: Iterable[AssetSnapshot]) -> list[dict]:
    # Last record wins when a coin id shows up twice in one write.
    rows: dict[str, dict] = {}
    for snapshot in snapshots:
        rows[snapshot.coin_id] = snapshot.model_dump()
    return list(rows.values())


def candle_rows(candles: Iterable[HistoricalCandle]) -> list[dict]:
    return [candle.model_dump() for candle in candles]


def build_snapshot_upsert(rows: list[dict], dialect_name: str = "postgresql"):
    insert = _insert_for(dialect_name)
    if insert is None:
        raise ValueError(f"Upsert is not supported for dialect {dialect_name!r}")
    stmt = insert(Crypto).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=[Crypto.coin_id],
        set_={column: stmt.excluded[column] for column in _SNAPSHOT_UPDATE_COLUMNS},
    )


def build_candle_insert(rows: list[dict], dialect_name: str = "postgresql"):
    insert = _insert_for(dialect_name)
    if insert is None:
        raise ValueError(f"Conflict-tolerant insert is not supported for dialect {dialect_name!r}")
    stmt = insert(HistoricalCrypto).values(rows)
    stmt = stmt.on_conflict_do_nothing(index_elements=list(_CANDLE_KEY))
    return stmt.returning(HistoricalCrypto.coin_id, HistoricalCrypto.timestamp)


class SqlAlchemyStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def upsert_snapshots(self, snapshots: Iterable[AssetSnapshot]) -> int:
        rows = snapshot_rows(snapshots)
        if not rows:
            return 0
        try:
            async with self.session_factory() as session:
                dialect_name = session.bind.dialect.name
                if _insert_for(dialect_name) is None:
                    await self._merge_snapshots(session, rows)
                else:
                    await session.execute(build_snapshot_upsert(rows, dialect_name))
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Snapshot upsert failed: {exc!r}") from exc
        return len(rows)

    async def _merge_snapshots(self, session: AsyncSession, rows: list[dict]) -> None:
        for row in rows:
            result = await session.execute(select(Crypto).where(Crypto.coin_id == row["coin_id"]))
            existing = result.scalar_one_or_none()
            if existing is None:
                session.add(Crypto(**row))
                continue
            for column in _SNAPSHOT_UPDATE_COLUMNS:
                setattr(existing, column, row[column])

    async def insert_candles(self, candles: Iterable[HistoricalCandle]) -> InsertOutcome:
        rows = candle_rows(candles)
        if not rows:
            return InsertOutcome()
        try:
            async with self.session_factory() as session:
                dialect_name = session.bind.dialect.name
                if _insert_for(dialect_name) is None:
                    outcome = await self._insert_candles_one_by_one(session, rows)
                else:
                    result = await session.execute(build_candle_insert(rows, dialect_name))
                    inserted = len(result.all())
                    outcome = InsertOutcome(inserted=inserted, duplicates=len(rows) - inserted)
                await session.commit()
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Candle insert failed: {exc!r}") from exc
        return outcome

    async def _insert_candles_one_by_one(
        self, session: AsyncSession, rows: list[dict]
    ) -> InsertOutcome:
        inserted = 0
        duplicates = 0
        for row in rows:
            try:
                async with session.begin_nested():
                    session.add(HistoricalCrypto(**row))
            except IntegrityError:
                duplicates += 1
                continue
            inserted += 1
        return InsertOutcome(inserted=inserted, duplicates=duplicates)

    async def count_snapshots(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(Crypto))
            return int(result.scalar_one())

    async def find_snapshots(self, search: str = "", limit: int = 10) -> list[AssetSnapshot]:
        stmt = select(Crypto).order_by(Crypto.market_cap.desc()).limit(limit)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(Crypto.name.ilike(pattern), Crypto.symbol.ilike(pattern)))
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [AssetSnapshot.model_validate(row) for row in result.scalars().all()]

    async def find_candles(
        self,
        coin_id: str,
        since: datetime.datetime | None = None,
        limit: int | None = None,
        ascending: bool = False,
    ) -> list[HistoricalCandle]:
        order = HistoricalCrypto.timestamp.asc() if ascending else HistoricalCrypto.timestamp.desc()
        stmt = select(HistoricalCrypto).where(HistoricalCrypto.coin_id == coin_id).order_by(order)
        if since is not None:
            stmt = stmt.where(HistoricalCrypto.timestamp >= since)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [HistoricalCandle.model_validate(row) for row in result.scalars().all()]
