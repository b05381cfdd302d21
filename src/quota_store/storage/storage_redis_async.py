import asyncio
import logging
import time
from datetime import timedelta
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

import redis
import redis.asyncio as aioredis

from ..algorithms.token_bucket import (
    FIELD_TOKENS,
    TOKEN_BUCKET_SCRIPT,
    WEEK_SECONDS,
    TakeResult,
    parse_take_reply,
)
from ..config import StoreSettings
from ..errors import QuotaStoreError
from .base import RedisStoreBase

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def _with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout)


class AsyncRedisStore(RedisStoreBase):
    """
    asyncio flavour of RedisStore for use inside event loops (FastAPI, etc).

    Every operation takes an optional timeout in seconds. A call that times
    out or whose task is cancelled is abandoned; whatever Redis already
    executed stays applied.
    """

    def __init__(
        self,
        redis_client: Optional[aioredis.Redis] = None,
        settings: Optional[StoreSettings] = None,
        clock: Callable[[], int] = time.time_ns,
    ):
        if redis_client is None:
            redis_client = aioredis.Redis(host='localhost', port=6379, db=0, decode_responses=True)

        super().__init__(redis_client, settings, clock)
        self.take_script = self.redis.register_script(TOKEN_BUCKET_SCRIPT)

    async def take(self, key: str, timeout: Optional[float] = None) -> TakeResult:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        args = self._take_args()
        with self._translate_errors("run script", redis_key):
            reply = await _with_timeout(self.take_script(keys=[redis_key], args=args), timeout)

        result = parse_take_reply(reply)
        logger.debug("take %r: %s", redis_key, result)
        return result

    async def get(self, key: str, timeout: Optional[float] = None) -> Tuple[int, int]:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        with self._translate_errors("get key", redis_key):
            reply = await _with_timeout(self.redis.hmget(redis_key, self._get_fields()), timeout)
        return self._parse_get_reply(redis_key, reply)

    async def set(self, key: str, tokens: int, interval: timedelta, timeout: Optional[float] = None) -> None:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        mapping = self._set_mapping(tokens, interval)
        with self._translate_errors("set key", redis_key):
            await _with_timeout(self.redis.hset(redis_key, mapping=mapping), timeout)
        with self._translate_errors("set expire on key", redis_key):
            await _with_timeout(self.redis.expire(redis_key, WEEK_SECONDS), timeout)

    async def burst(self, key: str, tokens: int, timeout: Optional[float] = None) -> None:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        tokens = self._burst_amount(tokens)
        with self._translate_errors("burst key", redis_key):
            await _with_timeout(self.redis.hincrby(redis_key, FIELD_TOKENS, tokens), timeout)
        with self._translate_errors("set expire on key", redis_key):
            await _with_timeout(self.redis.expire(redis_key, WEEK_SECONDS), timeout)

    async def close(self) -> None:
        if not self.lifecycle.stop():
            return

        try:
            await self.redis.aclose()
        except redis.RedisError as err:
            raise QuotaStoreError(f"failed to close client: {err}") from err
        logger.info("Async Redis quota store closed")
