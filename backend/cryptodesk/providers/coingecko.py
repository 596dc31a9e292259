from __future__ import annotations

import asyncio
import datetime
import http.client
import json
import logging
import socket
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from cryptodesk.config.settings import ProviderSettings, settings
from cryptodesk.schemas.crypto import AssetSnapshot, HistoricalCandle
from cryptodesk.schemas.provider import ErrorKind, FetchError, ProviderResponse

logger = logging.getLogger(__name__)

_MARKETS_PATH = "/coins/markets"
_OHLC_PATH = "/coins/{coin_id}/ohlc"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _parse_timestamp(value: Any) -> datetime.datetime:
    if isinstance(value, str) and value:
        try:
            parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return _utcnow()
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=datetime.UTC)
        return parsed
    return _utcnow()


def _as_float(value: Any, default: float | None = 0.0) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def parse_markets(payload: list[Any]) -> list[AssetSnapshot]:
    snapshots: list[AssetSnapshot] = []
    for coin in payload:
        if not isinstance(coin, dict):
            continue
        snapshots.append(
            AssetSnapshot(
                coin_id=coin.get("id") or "unknown",
                name=coin.get("name") or "Unknown",
                symbol=coin.get("symbol") or "UNK",
                current_price=_as_float(coin.get("current_price")),
                market_cap=_as_float(coin.get("market_cap")),
                price_change_24h=_as_float(coin.get("price_change_percentage_24h")),
                last_updated=_parse_timestamp(coin.get("last_updated")),
            )
        )
    return snapshots


def parse_ohlc(payload: list[Any], asset: AssetSnapshot) -> list[HistoricalCandle]:
    candles: list[HistoricalCandle] = []
    for row in payload:
        # [timestamp_ms, open, high, low, close]
        if not isinstance(row, list) or len(row) < 5:
            continue
        values = [_as_float(value, None) for value in row[:5]]
        if any(value is None for value in values):
            continue
        ts_ms, open_, high, low, close = values
        candles.append(
            HistoricalCandle(
                coin_id=asset.coin_id,
                name=asset.name,
                symbol=asset.symbol,
                open=open_,
                high=high,
                low=low,
                close=close,
                timestamp=datetime.datetime.fromtimestamp(ts_ms / 1000, tz=datetime.UTC),
            )
        )
    return candles


def _provider_code(exc: HTTPError) -> str:
    try:
        body = json.loads(exc.read().decode("utf-8"))
    except (OSError, ValueError, AttributeError):
        return "http_error"
    status = body.get("status") if isinstance(body, dict) else None
    if isinstance(status, dict) and status.get("error_code") is not None:
        return str(status["error_code"])
    return "http_error"


class CoinGeckoClient:
    """Read-only client for the markets and OHLC endpoints.

    Every failure is reported through ``ProviderResponse.error``; nothing
    raises past ``fetch_markets`` or ``fetch_ohlc``.
    """

    def __init__(self, config: ProviderSettings | None = None) -> None:
        self.config = config or settings.provider

    def _build_url(self, path: str, params: dict[str, str]) -> str:
        base_url = self.config.base_url.rstrip("/")
        return f"{base_url}{path}?{urlencode(params)}"

    def _get_json(self, url: str) -> Any:
        headers = {"Accept": "application/json"}
        if self.config.api_key:
            headers["x-cg-demo-api-key"] = self.config.api_key
        request = Request(url, headers=headers)
        with urlopen(request, timeout=self.config.request_timeout_seconds) as response:
            body = response.read().decode("utf-8")
        return json.loads(body)

    def _request(self, endpoint: str, url: str) -> ProviderResponse:
        logger.debug("GET %s", url)
        try:
            payload = self._get_json(url)
        except HTTPError as exc:
            kind = ErrorKind.RATE_LIMITED if exc.code == 429 else ErrorKind.UPSTREAM
            return ProviderResponse(
                endpoint=endpoint,
                status="rate_limited" if kind is ErrorKind.RATE_LIMITED else "error",
                error=FetchError(
                    kind=kind,
                    message=f"{endpoint} returned HTTP {exc.code}",
                    provider_code=_provider_code(exc),
                    http_status=exc.code,
                ),
            )
        except (TimeoutError, socket.timeout) as exc:
            return ProviderResponse(
                endpoint=endpoint,
                status="error",
                error=FetchError(
                    kind=ErrorKind.NETWORK,
                    message=f"{endpoint} timed out: {exc}",
                    provider_code="timeout",
                ),
            )
        except URLError as exc:
            return ProviderResponse(
                endpoint=endpoint,
                status="error",
                error=FetchError(
                    kind=ErrorKind.NETWORK,
                    message=f"{endpoint} unreachable: {exc.reason}",
                    provider_code="connection_error",
                ),
            )
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            return ProviderResponse(
                endpoint=endpoint,
                status="error",
                error=FetchError(
                    kind=ErrorKind.UPSTREAM,
                    message=f"{endpoint} returned a malformed body: {exc}",
                    provider_code="malformed_payload",
                ),
            )
        except (OSError, http.client.HTTPException) as exc:
            # Faults while reading the response are not wrapped in URLError.
            return ProviderResponse(
                endpoint=endpoint,
                status="error",
                error=FetchError(
                    kind=ErrorKind.NETWORK,
                    message=f"{endpoint} connection failed: {exc!r}",
                    provider_code="connection_error",
                ),
            )

        if not isinstance(payload, list):
            return ProviderResponse(
                endpoint=endpoint,
                status="error",
                error=FetchError(
                    kind=ErrorKind.UPSTREAM,
                    message=f"{endpoint} returned an unexpected payload",
                    provider_code="malformed_payload",
                ),
            )
        return ProviderResponse(endpoint=endpoint, data=payload)

    async def fetch_markets(self, page: int, per_page: int) -> ProviderResponse:
        url = self._build_url(
            _MARKETS_PATH,
            {
                "vs_currency": self.config.vs_currency,
                "order": "market_cap_desc",
                "per_page": str(per_page),
                "page": str(page),
                "sparkline": "false",
                "price_change_percentage": "24h",
            },
        )
        response = await asyncio.to_thread(self._request, "markets", url)
        if response.ok:
            response.data = parse_markets(response.data)
        return response

    async def fetch_ohlc(self, asset: AssetSnapshot, days: int) -> ProviderResponse:
        path = _OHLC_PATH.format(coin_id=quote(asset.coin_id, safe=""))
        url = self._build_url(
            path, {"vs_currency": self.config.vs_currency, "days": str(days)}
        )
        response = await asyncio.to_thread(self._request, f"ohlc:{asset.coin_id}", url)
        if response.ok:
            response.data = parse_ohlc(response.data, asset)
        return response
