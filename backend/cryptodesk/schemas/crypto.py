from __future__ import annotations

import datetime

from pydantic import BaseModel, ConfigDict, Field

from cryptodesk.schemas.provider import FetchError


class AssetSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    coin_id: str
    name: str
    symbol: str
    current_price: float = 0.0
    market_cap: float = 0.0
    price_change_24h: float | None = None
    last_updated: datetime.datetime


class HistoricalCandle(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    coin_id: str
    name: str
    symbol: str
    open: float
    high: float
    low: float
    close: float
    volume: float | None = None
    timestamp: datetime.datetime


class IngestionResult(BaseModel):
    success: bool
    error: FetchError | None = None
    used_fallback_cache: bool = False
    skipped: bool = False
    attempts: int = 0
    api_calls: int = 0


class CryptoListResponse(BaseModel):
    data: list[AssetSnapshot] = Field(default_factory=list)


class CandleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    open: float
    high: float
    low: float
    close: float
    volume: float | None = None
    timestamp: datetime.datetime


class ChartPoint(BaseModel):
    t: datetime.datetime
    o: float
    h: float
    l: float
    c: float


class ChartDataset(BaseModel):
    label: str
    data: list[ChartPoint] = Field(default_factory=list)


class ChartResponse(BaseModel):
    labels: list[str] = Field(default_factory=list)
    datasets: list[ChartDataset] = Field(default_factory=list)


class RefreshResponse(BaseModel):
    job_id: str
    status: str = "queued"
