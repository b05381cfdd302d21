"""Distributed token bucket quotas kept in Redis."""

import logging

from .algorithms.token_bucket import TakeResult, parse_rate_limit_string
from .config import StoreSettings, get_settings
from .errors import (
    ConnectionUnavailableError,
    MalformedResponseError,
    ProcedureExecutionError,
    QuotaStoreError,
    StoppedError,
)
from .storage.factory import StoreFactory
from .storage.storage_redis import RedisStore
from .storage.storage_redis_async import AsyncRedisStore

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AsyncRedisStore",
    "ConnectionUnavailableError",
    "MalformedResponseError",
    "ProcedureExecutionError",
    "QuotaStoreError",
    "RedisStore",
    "StoppedError",
    "StoreFactory",
    "StoreSettings",
    "TakeResult",
    "get_settings",
    "parse_rate_limit_string",
]
