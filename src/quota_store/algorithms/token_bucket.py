import logging
from datetime import timedelta
from typing import NamedTuple, Tuple

from ..errors import MalformedResponseError

logger = logging.getLogger(__name__)

# Hash fields shared with TOKEN_BUCKET_SCRIPT. Renaming any of them breaks
# compatibility with buckets already stored in Redis.
FIELD_START = "s"
FIELD_TICK = "t"
FIELD_INTERVAL = "i"
FIELD_TOKENS = "k"
FIELD_MAX_TOKENS = "m"

# Expiry for buckets touched through set() or burst().
WEEK_SECONDS = 60 * 60 * 24 * 7

TAKE_REPLY_SIZE = 4


class TakeResult(NamedTuple):
    limit: int
    remaining: int
    reset: int  # unix time of the next refill, in nanoseconds
    allowed: bool


# Runs atomically inside Redis.
#   KEYS[1]  bucket key
#   ARGV[1]  current unix time in nanoseconds
#   ARGV[2]  default tokens per interval, used when the key has no "m" field
#   ARGV[3]  default interval in nanoseconds, used when the key has no "i" field
# Returns {max tokens, remaining tokens, next refill time, allowed}.
TOKEN_BUCKET_SCRIPT = """
local C_EXPIRE   = 'EXPIRE'
local C_HGETALL  = 'HGETALL'
local C_HSET     = 'HSET'
local F_START    = 's'
local F_TICK     = 't'
local F_INTERVAL = 'i'
local F_TOKENS   = 'k'
local F_MAX      = 'm'

local key          = KEYS[1]
local now          = tonumber(ARGV[1])
local defmaxtokens = tonumber(ARGV[2])
local definterval  = tonumber(ARGV[3])

local hgetall = function (key)
  local data = redis.call(C_HGETALL, key)
  local result = {}
  for i = 1, #data, 2 do
    result[data[i]] = data[i+1]
  end
  return result
end

local present = function (val)
  return val ~= nil and val ~= ''
end

-- number of whole intervals between start and curr, never negative
local tick = function (start, curr, interval)
  local val = math.floor((curr - start) / interval)
  if val > 0 then
    return val
  end
  return 0
end

local availabletokens = function (last, curr, max, fillrate)
  local available = (curr - last) * fillrate
  if available > max then
    available = max
  end
  return available
end

-- 3x the interval, in whole seconds. EXPIRE 0 would delete the key.
local ttl = function (interval)
  local val = 3 * math.floor(interval / 1000000000)
  if val < 1 then
    return 1
  end
  return val
end

local data = hgetall(key)

local start = now
if present(data[F_START]) then
  start = tonumber(data[F_START])
else
  redis.call(C_HSET, key, F_START, now)
  redis.call(C_EXPIRE, key, 30)
end

local lasttick = 0
if present(data[F_TICK]) then
  lasttick = tonumber(data[F_TICK])
else
  redis.call(C_HSET, key, F_TICK, 0)
  redis.call(C_EXPIRE, key, 30)
end

local maxtokens = defmaxtokens
if present(data[F_MAX]) then
  maxtokens = tonumber(data[F_MAX])
end

local tokens = maxtokens
if present(data[F_TOKENS]) then
  tokens = tonumber(data[F_TOKENS])
end

local interval = definterval
if present(data[F_INTERVAL]) then
  interval = tonumber(data[F_INTERVAL])
end

local currtick = tick(start, now, interval)
local nexttime = start + ((currtick + 1) * interval)

if lasttick < currtick then
  -- rate comes from the token count before the refill; with zero tokens it
  -- is infinite and availabletokens clamps it to maxtokens
  local rate = interval / tokens
  tokens = availabletokens(lasttick, currtick, maxtokens, rate)
  lasttick = currtick
  redis.call(C_HSET, key,
    F_START, start,
    F_TICK, lasttick,
    F_INTERVAL, interval,
    F_TOKENS, tokens)
  redis.call(C_EXPIRE, key, ttl(interval))
end

if tokens > 0 then
  tokens = tokens - 1
  redis.call(C_HSET, key, F_TOKENS, tokens)
  redis.call(C_EXPIRE, key, ttl(interval))
  return {maxtokens, tokens, nexttime, true}
end

return {maxtokens, tokens, nexttime, false}
"""


def to_nanoseconds(interval: timedelta) -> int:
    """Convert a timedelta to whole nanoseconds without going through floats"""
    return (interval // timedelta(microseconds=1)) * 1000


def parse_take_reply(reply) -> TakeResult:
    """
    Turn the script reply into a TakeResult.

    Redis sends Lua true as 1 and Lua false as nil.
    """
    if reply is None or len(reply) < TAKE_REPLY_SIZE:
        raise MalformedResponseError(TAKE_REPLY_SIZE, reply)

    limit, remaining, reset, allowed = reply[:TAKE_REPLY_SIZE]
    return TakeResult(int(limit), int(remaining), int(reset), bool(allowed))


def decode_field(key: str, field: str, value) -> int:
    """
    Best-effort integer decode of a stored hash field.

    Missing fields and values that are not integers both count as 0; the
    latter is logged but never raised.
    """
    if value is None:
        return 0
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    try:
        decoded = int(value)
    except ValueError:
        decoded = -1
    if decoded < 0:
        logger.debug("Field %r of %r is not a token count (%r), using 0", field, key, value)
        return 0
    return decoded


def parse_rate_limit_string(rate_string: str) -> Tuple[int, timedelta]:
    """
    Parse strings like "10/minute" into (tokens, interval).
    """
    if '/' not in rate_string:
        raise ValueError("Rate limit string must be in 'N/period' format")

    requests, period = rate_string.split('/')
    tokens = int(requests)

    period_map = {
        'second': timedelta(seconds=1),
        'minute': timedelta(minutes=1),
        'hour': timedelta(hours=1),
        'day': timedelta(days=1)
    }

    if period not in period_map:
        raise ValueError(f"Unsupported period: {period}. Use : {list(period_map.keys())}")
    if tokens < 1:
        raise ValueError("Rate limit must allow at least one request")

    return tokens, period_map[period]
