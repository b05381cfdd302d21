import logging
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import timedelta
from typing import Callable, Iterator, List, Optional, Tuple

import redis

from ..algorithms.token_bucket import (
    FIELD_INTERVAL,
    FIELD_MAX_TOKENS,
    FIELD_TOKENS,
    TakeResult,
    decode_field,
    to_nanoseconds,
)
from ..config import StoreSettings
from ..errors import ConnectionUnavailableError, MalformedResponseError, ProcedureExecutionError
from ..lifecycle import Lifecycle

logger = logging.getLogger(__name__)


class QuotaStore(ABC):
    """Abstract base class for quota stores"""

    @abstractmethod
    def take(self, key: str) -> TakeResult:
        """
        Atomically refill the bucket for key and try to remove one token.

        Args:
            key: The bucket identifier

        Returns:
            TakeResult(limit, remaining, reset, allowed), where reset is the
            unix time of the next refill in nanoseconds
        """
        pass

    @abstractmethod
    def get(self, key: str) -> Tuple[int, int]:
        """
        Read the stored limit and remaining tokens without refilling.

        The values can be stale relative to elapsed intervals. Fields that
        are missing or unreadable are reported as 0.

        Returns:
            Tuple of (limit, remaining)
        """
        pass

    @abstractmethod
    def set(self, key: str, tokens: int, interval: timedelta) -> None:
        """
        Overwrite the limit, remaining tokens and interval of a bucket.

        Args:
            key: The bucket identifier
            tokens: New capacity, also used as the remaining count
            interval: New refill interval
        """
        pass

    @abstractmethod
    def burst(self, key: str, tokens: int) -> None:
        """
        Add tokens to a bucket, possibly above its capacity.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Stop the store and close its Redis client. Safe to call repeatedly."""
        pass


class RedisStoreBase:
    """
    Marshalling, error translation and lifecycle shared by the blocking and
    the asyncio Redis stores.
    """

    def __init__(
        self,
        redis_client,
        settings: Optional[StoreSettings] = None,
        clock: Callable[[], int] = time.time_ns,
    ):
        settings = settings or StoreSettings()

        self.redis = redis_client
        self.key_prefix = settings.key_prefix
        self.tokens = settings.tokens
        self.interval = settings.interval
        self.clock = clock
        self.lifecycle = Lifecycle()

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _take_args(self) -> List[str]:
        # Read the clock here: the limit applies from call time, not from
        # whenever Redis gets to run the script.
        now = self.clock()
        return [str(now), str(self.tokens), str(to_nanoseconds(self.interval))]

    @staticmethod
    def _set_mapping(tokens: int, interval: timedelta) -> dict:
        if tokens < 0:
            raise ValueError("tokens must not be negative")
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        return {
            FIELD_TOKENS: tokens,
            FIELD_MAX_TOKENS: tokens,
            FIELD_INTERVAL: to_nanoseconds(interval),
        }

    @staticmethod
    def _burst_amount(tokens: int) -> int:
        # stored tokens must stay non-negative
        if tokens < 0:
            raise ValueError("tokens must not be negative")
        return tokens

    @staticmethod
    def _get_fields() -> List[str]:
        return [FIELD_MAX_TOKENS, FIELD_TOKENS]

    def _parse_get_reply(self, key: str, reply) -> Tuple[int, int]:
        if reply is None or len(reply) != 2:
            raise MalformedResponseError(2, reply)
        limit = decode_field(key, FIELD_MAX_TOKENS, reply[0])
        remaining = decode_field(key, FIELD_TOKENS, reply[1])
        return limit, remaining

    @contextmanager
    def _translate_errors(self, action: str, key: str) -> Iterator[None]:
        """Map redis-py exceptions onto the store's exception types"""
        try:
            yield
        except (redis.ConnectionError, redis.TimeoutError) as err:
            logger.warning("Redis unavailable while trying to %s %r: %s", action, key, err)
            raise ConnectionUnavailableError(f"failed to {action}: {err}") from err
        except redis.RedisError as err:
            logger.warning("Redis failed to %s %r: %s", action, key, err)
            raise ProcedureExecutionError(f"failed to {action}: {err}") from err
