from cryptodesk.ingestion.ttl_cache import TTLCache, candle_cache_key
from fakes import FakeClock


def test_candle_cache_key_format() -> None:
    assert candle_cache_key("BTC", 3) == "BTC_ohlc_3d"
    assert candle_cache_key("usd-coin", 1) == "usd-coin_ohlc_1d"


def test_get_returns_payload_within_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=30 * 60, clock=clock)
    payload = [{"close": 1.0}]

    cache.put("BTC_ohlc_3d", payload)
    clock.advance(5 * 60)

    assert cache.get("BTC_ohlc_3d") == (payload, True)


def test_get_misses_once_ttl_elapsed() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=60, clock=clock)

    cache.put("BTC_ohlc_3d", [1])
    clock.advance(60)

    assert cache.get("BTC_ohlc_3d") == (None, False)
    # Expired entries stay until overwritten.
    assert len(cache) == 1


def test_missing_key_is_a_miss() -> None:
    cache = TTLCache(ttl_seconds=60, clock=FakeClock())
    assert cache.get("nope") == (None, False)


def test_put_overwrites_and_restamps() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=60, clock=clock)

    cache.put("ETH_ohlc_3d", ["old"])
    clock.advance(59)
    cache.put("ETH_ohlc_3d", ["new"])
    clock.advance(30)

    assert cache.get("ETH_ohlc_3d") == (["new"], True)


def test_has_fresh_entry_tracks_ttl() -> None:
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=60, clock=clock)
    assert cache.has_fresh_entry() is False

    cache.put("a", 1)
    clock.advance(30)
    cache.put("b", 2)
    clock.advance(40)
    assert cache.has_fresh_entry() is True

    clock.advance(30)
    assert cache.has_fresh_entry() is False
