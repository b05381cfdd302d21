import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from quota_store import StoreFactory, StoreSettings, parse_rate_limit_string
from quota_store.decorator import rate_limit

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

# QUOTA_STORE_* variables still apply for the connection settings
tokens, interval = parse_rate_limit_string(os.environ.get("RATE_LIMIT", "10/minute"))
settings = StoreSettings(tokens=tokens, interval=interval)

store = StoreFactory.create_store(settings, asynchronous=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await store.close()


app = FastAPI(lifespan=lifespan)


@app.get("/limited")
@rate_limit(store)
async def limited_endpoint(request: Request):
    return {"message": "Redis-based rate limiting"}


# Custom key function
def get_api_key(request):
    return request.headers.get("X-API-Key", "anonymous")


@app.get("/api")
@rate_limit(store, key_func=get_api_key)
async def api_endpoint(request: Request):
    return {"message": "API key rate limiting with Redis"}


@app.get("/quota/{key}")
async def quota(key: str):
    limit, remaining = await store.get(key)
    return {"key": key, "limit": limit, "remaining": remaining}


@app.put("/quota/{key}")
async def configure_quota(key: str, rate: str):
    tokens, interval = parse_rate_limit_string(rate)
    await store.set(key, tokens, interval)
    return {"key": key, "limit": tokens, "interval_seconds": interval.total_seconds()}


@app.post("/quota/{key}/burst")
async def burst_quota(key: str, tokens: int):
    await store.burst(key, tokens)
    limit, remaining = await store.get(key)
    return {"key": key, "limit": limit, "remaining": remaining}
