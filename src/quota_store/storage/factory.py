import logging
from typing import Optional, Union

import redis
import redis.asyncio as aioredis

from ..config import StoreSettings, get_settings
from .storage_redis import RedisStore
from .storage_redis_async import AsyncRedisStore

logger = logging.getLogger(__name__)


class StoreFactory:
    """Factory to create quota stores from settings"""

    @staticmethod
    def create_store(
        settings: Optional[StoreSettings] = None,
        *,
        redis_client=None,
        asynchronous: bool = False,
    ) -> Union[RedisStore, AsyncRedisStore]:
        """
        Create a quota store.

        Args:
            settings: Store settings, read from the environment when omitted
            redis_client: Use this client instead of building one from
                settings.redis_url. The store closes it on close().
            asynchronous: Build an AsyncRedisStore on a redis.asyncio client

        Returns:
            A RedisStore or AsyncRedisStore
        """
        settings = settings or get_settings()

        if redis_client is None:
            redis_client = StoreFactory.create_client(settings, asynchronous)

        logger.info(
            "Creating %s store: %d tokens per %s",
            "async" if asynchronous else "blocking",
            settings.tokens,
            settings.interval,
        )
        if asynchronous:
            return AsyncRedisStore(redis_client=redis_client, settings=settings)
        return RedisStore(redis_client=redis_client, settings=settings)

    @staticmethod
    def create_client(settings: StoreSettings, asynchronous: bool = False):
        """Build a Redis client whose pool follows the settings"""
        module = aioredis if asynchronous else redis
        options = {
            "decode_responses": True,
            "socket_timeout": settings.socket_timeout,
            "health_check_interval": settings.health_check_interval,
        }

        if settings.max_connections is None:
            return module.Redis.from_url(settings.redis_url, **options)

        # Blocking pool: callers wait for a free connection instead of
        # failing as soon as the ceiling is reached.
        if settings.pool_timeout is not None:
            options["timeout"] = settings.pool_timeout
        pool = module.BlockingConnectionPool.from_url(
            settings.redis_url,
            max_connections=settings.max_connections,
            **options,
        )
        return module.Redis.from_pool(pool)
