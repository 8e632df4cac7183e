import asyncio
import pytest
import config.cache as cache
from config.settings import settings


class PingableRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.pings = 0
        self.closed = False

    async def ping(self):
        self.pings += 1
        if self.fail:
            raise ConnectionError("refused")
        return True

    async def aclose(self):
        self.closed = True


def test_client_is_created_once_and_closed(monkeypatch):
    made = []

    def fake_from_url(url, **kw):
        made.append((url, kw))
        return PingableRedis()

    monkeypatch.setattr(cache, "from_url", fake_from_url)
    monkeypatch.setattr(cache, "_client", None)

    async def run():
        first = await cache.get_redis()
        second = await cache.get_redis()
        await cache.close_redis()
        await cache.close_redis()
        return first, second

    first, second = asyncio.run(run())
    assert first is second
    assert first.pings == 1 and first.closed
    assert len(made) == 1
    assert made[0][0] == settings.REDIS_URL
    assert made[0][1]["decode_responses"] is False
    assert made[0][1]["health_check_interval"] == settings.REDIS_HEALTH_CHECK_SECONDS
    assert cache._client is None


def test_unreachable_redis_is_not_cached(monkeypatch):
    monkeypatch.setattr(cache, "from_url", lambda url, **kw: PingableRedis(fail=True))
    monkeypatch.setattr(cache, "_client", None)
    with pytest.raises(ConnectionError):
        asyncio.run(cache.get_redis())
    assert cache._client is None
