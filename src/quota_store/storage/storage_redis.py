import logging
import time
from datetime import timedelta
from typing import Callable, Optional, Tuple

import redis

from ..algorithms.token_bucket import (
    FIELD_TOKENS,
    TOKEN_BUCKET_SCRIPT,
    WEEK_SECONDS,
    TakeResult,
    parse_take_reply,
)
from ..config import StoreSettings
from ..errors import QuotaStoreError
from .base import QuotaStore, RedisStoreBase

logger = logging.getLogger(__name__)


class RedisStore(RedisStoreBase, QuotaStore):
    """Redis-based quota store. Take runs as a single Lua script."""

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        settings: Optional[StoreSettings] = None,
        clock: Callable[[], int] = time.time_ns,
    ):
        if redis_client is None:
            redis_client = redis.Redis(host='localhost', port=6379, db=0, decode_responses=True)

        super().__init__(redis_client, settings, clock)
        self.take_script = self.redis.register_script(TOKEN_BUCKET_SCRIPT)

    def take(self, key: str) -> TakeResult:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        args = self._take_args()
        with self._translate_errors("run script", redis_key):
            reply = self.take_script(keys=[redis_key], args=args)

        result = parse_take_reply(reply)
        logger.debug("take %r: %s", redis_key, result)
        return result

    def get(self, key: str) -> Tuple[int, int]:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        with self._translate_errors("get key", redis_key):
            reply = self.redis.hmget(redis_key, self._get_fields())
        return self._parse_get_reply(redis_key, reply)

    def set(self, key: str, tokens: int, interval: timedelta) -> None:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        mapping = self._set_mapping(tokens, interval)
        with self._translate_errors("set key", redis_key):
            self.redis.hset(redis_key, mapping=mapping)

        # Second round trip, not atomic with the first. Without an expiry a
        # configured key that is never taken from would leak.
        with self._translate_errors("set expire on key", redis_key):
            self.redis.expire(redis_key, WEEK_SECONDS)

    def burst(self, key: str, tokens: int) -> None:
        self.lifecycle.check()

        redis_key = self._make_key(key)
        tokens = self._burst_amount(tokens)
        with self._translate_errors("burst key", redis_key):
            self.redis.hincrby(redis_key, FIELD_TOKENS, tokens)
        with self._translate_errors("set expire on key", redis_key):
            self.redis.expire(redis_key, WEEK_SECONDS)

    def close(self) -> None:
        if not self.lifecycle.stop():
            return

        try:
            self.redis.close()
        except redis.RedisError as err:
            raise QuotaStoreError(f"failed to close client: {err}") from err
        logger.info("Redis quota store closed")
