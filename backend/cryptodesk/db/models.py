# backend/cryptodesk/db/models.py

import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Crypto(Base):
    __tablename__ = "cryptos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    coin_id = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    symbol = Column(String, nullable=False)
    current_price = Column(Float, nullable=False)
    market_cap = Column(Float, nullable=False)
    price_change_24h = Column(Float)
    last_updated = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("ix_cryptos_market_cap", market_cap.desc()),)

    def __repr__(self):
        return f"<Crypto(coin_id='{self.coin_id}', price={self.current_price})>"


class HistoricalCrypto(Base):
    __tablename__ = "historical_cryptos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    coin_id = Column(String, nullable=False)
    name = Column(String, nullable=False)
    symbol = Column(String, nullable=False)
    open = Column(Float, nullable=False)
    high = Column(Float, nullable=False)
    low = Column(Float, nullable=False)
    close = Column(Float, nullable=False)
    volume = Column(Float)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # One candle per coin and timestamp; overlapping fetch windows collide here.
    __table_args__ = (
        UniqueConstraint("coin_id", "timestamp", name="uq_historical_cryptos_coin_ts"),
    )

    def __repr__(self):
        return f"<HistoricalCrypto(coin_id='{self.coin_id}', timestamp='{self.timestamp}')>"
