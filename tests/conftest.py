from datetime import timedelta

import fakeredis
import pytest

from quota_store import RedisStore, StoreSettings

SECOND = 10**9
# A whole number of seconds keeps every timestamp exact as a Lua double.
START = 1_700_000_000 * SECOND


class FakeClock:
    """Controllable nanosecond clock handed to the stores"""

    def __init__(self, now: int = START):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * SECOND)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(server):
    client = fakeredis.FakeRedis(server=server, decode_responses=True)
    yield client
    client.close()


@pytest.fixture
def make_store(server, clock):
    """Build RedisStores that share one fake Redis server and clock"""
    stores = []

    def _make(tokens: int = 1, interval: timedelta = timedelta(seconds=1), **kwargs) -> RedisStore:
        client = fakeredis.FakeRedis(server=server, decode_responses=True)
        settings = StoreSettings(tokens=tokens, interval=interval, **kwargs)
        store = RedisStore(client, settings, clock=clock)
        stores.append(store)
        return store

    yield _make

    for store in stores:
        store.close()
