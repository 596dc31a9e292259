import datetime
import logging
import re

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from cryptodesk.api.auth import require_api_key
from cryptodesk.cache import chart_cache_key, get_payload, list_cache_key, set_payload
from cryptodesk.config.settings import settings
from cryptodesk.db.session import AsyncSessionLocal
from cryptodesk.db.store import SqlAlchemyStore
from cryptodesk.ingestion.service import IngestionService
from cryptodesk.jobs.queue import enqueue_ingestion
from cryptodesk.schemas.crypto import (
    AssetSnapshot,
    CandleResponse,
    ChartDataset,
    ChartPoint,
    ChartResponse,
    CryptoListResponse,
    HistoricalCandle,
    RefreshResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()
crypto_router = APIRouter(prefix="/api/crypto", dependencies=[Depends(require_api_key)])

_COIN_ID_RE = re.compile(r"^[A-Za-z0-9-]+$")
_CHART_RANGES = {"1d": 1, "3d": 3}


def get_store() -> SqlAlchemyStore:
    return SqlAlchemyStore(AsyncSessionLocal)


def get_ingestion_service(request: Request) -> IngestionService:
    return request.app.state.ingestion_service


def _normalize_coin_id(coin_id: str) -> str:
    cleaned = coin_id.strip()
    if not _COIN_ID_RE.match(cleaned):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Invalid coin ID"},
        )
    return cleaned


def _build_chart(coin_id: str, candles: list[HistoricalCandle]) -> ChartResponse:
    return ChartResponse(
        labels=[candle.timestamp.isoformat() for candle in candles],
        datasets=[
            ChartDataset(
                label=f"{coin_id.upper()} Candlestick",
                data=[
                    ChartPoint(
                        t=candle.timestamp,
                        o=candle.open,
                        h=candle.high,
                        l=candle.low,
                        c=candle.close,
                    )
                    for candle in candles
                ],
            )
        ],
    )


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@crypto_router.get("", response_model=CryptoListResponse)
async def list_cryptos(
    search: str = Query(default="", max_length=64),
    store: SqlAlchemyStore = Depends(get_store),
    service: IngestionService = Depends(get_ingestion_service),
) -> CryptoListResponse:
    search = search.strip()
    cache_key = list_cache_key(search)
    cached = get_payload(cache_key)
    if cached is not None:
        logger.info("Using cached data for crypto list, search: %r", search)
        return CryptoListResponse(data=[AssetSnapshot(**item) for item in cached])

    cryptos = await store.find_snapshots(search=search, limit=settings.list_limit)
    if not cryptos and not search:
        # Empty table on first boot: ingest now instead of waiting for the schedule.
        # No inter-batch pause here; the request waits for the whole run.
        result = await service.run_ingestion(batch_delay=0)
        if not result.success:
            logger.warning("On-demand ingestion returned no fresh data: %s", result.error)
        cryptos = await store.find_snapshots(search=search, limit=settings.list_limit)

    if cryptos:
        set_payload(cache_key, [crypto.model_dump(mode="json") for crypto in cryptos])
    return CryptoListResponse(data=cryptos)


@crypto_router.get("/historical/{coin_id}", response_model=list[CandleResponse])
async def get_historical(
    coin_id: str, store: SqlAlchemyStore = Depends(get_store)
) -> list[CandleResponse]:
    normalized = _normalize_coin_id(coin_id)
    candles = await store.find_candles(normalized, limit=settings.historical_limit)
    if not candles:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "No historical data found for this coin"},
        )
    return [CandleResponse.model_validate(candle.model_dump()) for candle in candles]


@crypto_router.get("/chart/{coin_id}", response_model=ChartResponse)
async def get_chart(
    coin_id: str,
    range_: str = Query(default="1d", alias="range"),
    store: SqlAlchemyStore = Depends(get_store),
) -> ChartResponse:
    normalized = _normalize_coin_id(coin_id)
    days = _CHART_RANGES.get(range_, 1)
    cache_key = chart_cache_key(normalized, days)
    cached = get_payload(cache_key)
    if cached is not None:
        logger.info("Using cached chart data for %s, range: %dd", normalized, days)
        return ChartResponse(**cached)

    since = datetime.datetime.now(datetime.UTC) - datetime.timedelta(days=days)
    candles = await store.find_candles(normalized, since=since, ascending=True)
    if not candles:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "No historical data found for this coin"},
        )

    chart = _build_chart(normalized, candles)
    set_payload(cache_key, chart.model_dump(mode="json"))
    return chart


@crypto_router.post("/refresh", response_model=RefreshResponse, status_code=status.HTTP_202_ACCEPTED)
def refresh() -> RefreshResponse:
    job = enqueue_ingestion()
    return RefreshResponse(job_id=job.id)


router.include_router(crypto_router)
