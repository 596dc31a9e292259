from redis.exceptions import ConnectionError as RedisConnectionError

from cryptodesk.cache import chart_cache_key, get_payload, list_cache_key, set_payload


class FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expirations: dict[str, int] = {}

    def get(self, key: str) -> str | None:
        return self.store.get(key)

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.store[key] = value
        self.expirations[key] = ttl


class DownRedis:
    def get(self, key: str) -> str | None:
        raise RedisConnectionError("down")

    def setex(self, key: str, ttl: int, value: str) -> None:
        raise RedisConnectionError("down")


def test_cache_roundtrip(monkeypatch) -> None:
    fake = FakeRedis()
    monkeypatch.setattr("cryptodesk.cache._get_client", lambda: fake)

    payload = {"labels": ["2026-01-05T12:00:00+00:00"], "datasets": []}
    set_payload("bitcoin_chart_3d", payload, ttl_seconds=123)

    assert get_payload("bitcoin_chart_3d") == payload
    assert fake.expirations["bitcoin_chart_3d"] == 123


def test_cache_keys_follow_naming_convention() -> None:
    assert list_cache_key("") == "crypto_list_"
    assert list_cache_key("btc") == "crypto_list_btc"
    assert chart_cache_key("bitcoin", 3) == "bitcoin_chart_3d"


def test_corrupt_entry_reads_as_miss(monkeypatch) -> None:
    fake = FakeRedis()
    fake.store["crypto_list_"] = "{not json"
    monkeypatch.setattr("cryptodesk.cache._get_client", lambda: fake)

    assert get_payload("crypto_list_") is None


def test_unavailable_redis_degrades_to_miss(monkeypatch) -> None:
    monkeypatch.setattr("cryptodesk.cache._get_client", lambda: DownRedis())

    set_payload("crypto_list_", [])
    assert get_payload("crypto_list_") is None
