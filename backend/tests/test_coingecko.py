import asyncio
import datetime
import http.client
import io
import json
import socket
from unittest.mock import patch
from urllib.error import HTTPError, URLError

from cryptodesk.config.settings import ProviderSettings
from cryptodesk.providers.coingecko import CoinGeckoClient, parse_markets, parse_ohlc
from cryptodesk.schemas.provider import ErrorKind
from fakes import make_snapshot


class FakeResponse:
    def __init__(self, payload) -> None:
        self.body = json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self.body

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


def build_client() -> CoinGeckoClient:
    return CoinGeckoClient(ProviderSettings(base_url="https://example.test/api/v3/"))


def test_parse_markets_applies_defaults() -> None:
    snapshots = parse_markets(
        [
            {
                "id": "bitcoin",
                "name": "Bitcoin",
                "symbol": "btc",
                "current_price": 65000.5,
                "market_cap": 1.2e12,
                "price_change_percentage_24h": -1.25,
                "last_updated": "2026-01-05T12:00:00.000Z",
            },
            {"id": None, "current_price": None},
            "garbage",
        ]
    )

    assert len(snapshots) == 2
    assert snapshots[0].coin_id == "bitcoin"
    assert snapshots[0].last_updated == datetime.datetime(2026, 1, 5, 12, tzinfo=datetime.UTC)
    assert snapshots[1].coin_id == "unknown"
    assert snapshots[1].name == "Unknown"
    assert snapshots[1].symbol == "UNK"
    assert snapshots[1].current_price == 0.0
    assert snapshots[1].price_change_24h == 0.0


def test_parse_ohlc_maps_rows_and_skips_bad_ones() -> None:
    asset = make_snapshot("bitcoin")
    candles = parse_ohlc(
        [[1767614400000, 1, 2, 0.5, 1.5], [1767614400000, None, 2, 1, 1], [1, 2]],
        asset,
    )

    assert len(candles) == 1
    candle = candles[0]
    assert (candle.open, candle.high, candle.low, candle.close) == (1, 2, 0.5, 1.5)
    assert candle.timestamp == datetime.datetime(2026, 1, 5, 12, tzinfo=datetime.UTC)
    assert candle.coin_id == "bitcoin"


def test_fetch_markets_builds_paged_request() -> None:
    client = build_client()
    with patch(
        "cryptodesk.providers.coingecko.urlopen",
        return_value=FakeResponse([{"id": "bitcoin", "name": "Bitcoin", "symbol": "btc"}]),
    ) as urlopen_mock:
        response = asyncio.run(client.fetch_markets(page=2, per_page=5))

    request = urlopen_mock.call_args.args[0]
    assert request.full_url.startswith("https://example.test/api/v3/coins/markets?")
    assert "order=market_cap_desc" in request.full_url
    assert "per_page=5" in request.full_url
    assert "page=2" in request.full_url
    assert urlopen_mock.call_args.kwargs["timeout"] == 10.0
    assert response.ok
    assert response.data[0].coin_id == "bitcoin"


def test_rate_limit_is_classified() -> None:
    body = io.BytesIO(b'{"status": {"error_code": 429, "error_message": "slow down"}}')
    error = HTTPError("https://example.test", 429, "Too Many Requests", {}, body)
    with patch("cryptodesk.providers.coingecko.urlopen", side_effect=error):
        response = asyncio.run(build_client().fetch_ohlc(make_snapshot("bitcoin"), 3))

    assert response.status == "rate_limited"
    assert response.error.kind is ErrorKind.RATE_LIMITED
    assert response.error.http_status == 429
    assert response.error.provider_code == "429"


def test_other_http_errors_are_upstream() -> None:
    error = HTTPError("https://example.test", 404, "Not Found", {}, io.BytesIO(b""))
    with patch("cryptodesk.providers.coingecko.urlopen", side_effect=error):
        response = asyncio.run(build_client().fetch_markets(page=1, per_page=5))

    assert response.error.kind is ErrorKind.UPSTREAM
    assert response.error.http_status == 404
    assert response.error.provider_code == "http_error"


def test_timeouts_and_connection_errors_are_network() -> None:
    client = build_client()
    with patch("cryptodesk.providers.coingecko.urlopen", side_effect=socket.timeout("timed out")):
        timed_out = asyncio.run(client.fetch_markets(page=1, per_page=5))
    with patch("cryptodesk.providers.coingecko.urlopen", side_effect=URLError("refused")):
        refused = asyncio.run(client.fetch_markets(page=1, per_page=5))

    assert timed_out.error.kind is ErrorKind.NETWORK
    assert timed_out.error.provider_code == "timeout"
    assert refused.error.kind is ErrorKind.NETWORK
    assert refused.error.provider_code == "connection_error"


def test_non_list_payload_is_upstream_error() -> None:
    with patch(
        "cryptodesk.providers.coingecko.urlopen", return_value=FakeResponse({"error": "x"})
    ):
        response = asyncio.run(build_client().fetch_markets(page=1, per_page=5))

    assert not response.ok
    assert response.error.kind is ErrorKind.UPSTREAM
    assert response.error.provider_code == "malformed_payload"


class UndecodableResponse(FakeResponse):
    def __init__(self) -> None:
        self.body = b"\xff\xfe\xfa"


def test_faults_while_reading_are_network_errors() -> None:
    client = build_client()
    faults = [
        http.client.RemoteDisconnected("Remote end closed connection without response"),
        http.client.IncompleteRead(b"[{"),
        http.client.BadStatusLine("garbage"),
        ConnectionResetError(104, "Connection reset by peer"),
    ]
    for fault in faults:
        with patch("cryptodesk.providers.coingecko.urlopen", side_effect=fault):
            response = asyncio.run(client.fetch_markets(page=1, per_page=5))

        assert not response.ok
        assert response.error.kind is ErrorKind.NETWORK
        assert response.error.provider_code == "connection_error"


def test_undecodable_body_is_upstream_error() -> None:
    with patch("cryptodesk.providers.coingecko.urlopen", return_value=UndecodableResponse()):
        response = asyncio.run(build_client().fetch_ohlc(make_snapshot("bitcoin"), 3))

    assert response.error.kind is ErrorKind.UPSTREAM
    assert response.error.provider_code == "malformed_payload"
