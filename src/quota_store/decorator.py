from email.utils import formatdate
from functools import wraps
from typing import Callable, Optional, Union
import inspect
import math
import time

from fastapi import Request, HTTPException
from fastapi.concurrency import run_in_threadpool

from .algorithms.token_bucket import TakeResult
from .storage.storage_redis import RedisStore
from .storage.storage_redis_async import AsyncRedisStore


def rate_limit(
        store: Union[RedisStore, AsyncRedisStore],
        key_func: Optional[Callable[[Request], str]] = None,
):
    """
    Rate limiting decorator for FastAPI endpoints backed by a quota store.

    Args:
        store: A RedisStore, or an AsyncRedisStore for async endpoints
        key_func: Function to extract the bucket key from the request,
            defaults to the client host

    Examples:
        store = StoreFactory.create_store(StoreSettings(tokens=10, interval=60))

        @app.get("/items")
        @rate_limit(store)
        def items(request: Request): ...

    Store errors are not swallowed: if Redis is down the endpoint fails
    rather than letting every request through.
    """
    def default_key_func(request) -> str:
        if hasattr(request, 'client') and hasattr(request.client, 'host'):
            return request.client.host
        elif hasattr(request, 'remote_addr'):
            return request.remote_addr
        else:
            return "test-client"

    get_key = key_func or default_key_func

    def decorator(func):
        is_async = inspect.iscoroutinefunction(func)

        if is_async:
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                request = _find_request(args, kwargs)
                key = get_key(request)
                if isinstance(store, AsyncRedisStore):
                    result = await store.take(key)
                else:
                    # keep the blocking round trip off the event loop
                    result = await run_in_threadpool(store.take, key)

                if not result.allowed:
                    raise _limit_exceeded(result)
                return await func(*args, **kwargs)

            return async_wrapper

        else:
            if isinstance(store, AsyncRedisStore):
                raise TypeError(f"{func.__name__} is synchronous and cannot use an AsyncRedisStore")

            @wraps(func)
            def sync_wrapper(*args, **kwargs):
                request = _find_request(args, kwargs)
                result = store.take(get_key(request))

                if not result.allowed:
                    raise _limit_exceeded(result)
                return func(*args, **kwargs)

            return sync_wrapper

    return decorator


def rate_limit_headers(result: TakeResult) -> dict:
    """X-RateLimit-* headers describing a take result"""
    reset_seconds = result.reset / 1e9
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": formatdate(reset_seconds, usegmt=True),
    }


def _find_request(args, kwargs):
    request = None
    for arg in args:
        if hasattr(arg, 'client') and hasattr(arg, 'headers'):
            request = arg
            break
    if not request:
        for value in kwargs.values():
            if hasattr(value, 'client') and hasattr(value, 'headers'):
                request = value
                break
    if not request:
        available_types = [type(arg).__name__ for arg in args] + [type(v).__name__ for v in kwargs.values()]
        raise ValueError(
            f"No Request object found in function parameters. "
            f"Available parameter types: {available_types}. "
            f"Make sure your function includes 'request: Request' as a parameter."
        )
    return request


def _limit_exceeded(result: TakeResult) -> HTTPException:
    retry_after = max(0, math.ceil(result.reset / 1e9 - time.time()))

    headers = rate_limit_headers(result)
    headers["Retry-After"] = str(retry_after)

    return HTTPException(
        status_code=429,
        detail={
            "message": "Rate limit exceeded",
            "limit": result.limit,
            "remaining": result.remaining,
            "reset_in_seconds": retry_after,
        },
        headers=headers
    )
