from datetime import timedelta

from quota_store import TakeResult

from conftest import SECOND, START


def test_first_take_is_allowed(make_store):
    """A key that was never seen starts full"""
    store = make_store(tokens=5)

    result = store.take("user")

    assert result == TakeResult(limit=5, remaining=4, reset=START + SECOND, allowed=True)


def test_result_unpacks_like_a_tuple(make_store):
    store = make_store(tokens=3)

    limit, remaining, reset, allowed = store.take("user")

    assert (limit, remaining, reset, allowed) == (3, 2, START + SECOND, True)


def test_takes_within_interval_count_down_then_deny(make_store):
    store = make_store(tokens=5)

    remaining = [store.take("user").remaining for _ in range(5)]
    assert remaining == [4, 3, 2, 1, 0]

    denied = store.take("user")
    assert denied.allowed is False
    assert denied.remaining == 0
    assert denied.limit == 5
    assert denied.reset == START + SECOND


def test_keys_are_independent(make_store):
    store = make_store(tokens=1)

    assert store.take("alice").allowed
    assert not store.take("alice").allowed
    assert store.take("bob").allowed


def test_fifteen_per_minute_example(make_store, clock):
    store = make_store(tokens=15, interval=timedelta(seconds=60))

    results = [store.take("my-key") for _ in range(15)]
    assert all(r.allowed for r in results)

    sixteenth = store.take("my-key")
    assert sixteenth.allowed is False
    assert sixteenth.remaining == 0

    clock.advance(61)
    later = store.take("my-key")
    assert later.allowed is True
    assert later.remaining == 14
    assert later.reset == START + 120 * SECOND


def test_refill_is_clamped_to_capacity(make_store, clock):
    """Several elapsed intervals never fill the bucket past its capacity"""
    store = make_store(tokens=5)
    store.take("user")
    store.take("user")

    clock.advance(10)
    result = store.take("user")

    assert result.allowed
    assert result.remaining == 4
    assert result.reset == START + 11 * SECOND


def test_request_on_boundary_belongs_to_next_interval(make_store, clock):
    store = make_store(tokens=1)
    assert store.take("user").allowed
    assert not store.take("user").allowed

    clock.advance(1)
    result = store.take("user")

    assert result.allowed
    assert result.reset == START + 2 * SECOND


def test_no_refill_before_boundary(make_store, clock):
    store = make_store(tokens=1)
    store.take("user")

    clock.advance(0.999)
    result = store.take("user")

    assert not result.allowed
    assert result.reset == START + SECOND


def test_denied_take_leaves_bucket_untouched(make_store, redis_client):
    store = make_store(tokens=1)
    store.take("user")
    before = redis_client.hgetall("user")

    store.take("user")

    assert redis_client.hgetall("user") == before


def test_bucket_fields_written_on_first_take(make_store, redis_client):
    store = make_store(tokens=5)
    store.take("user")

    data = redis_client.hgetall("user")

    assert int(float(data["s"])) == START
    assert data["t"] == "0"
    assert data["k"] == "4"


def test_refill_persists_interval_and_tick(make_store, redis_client, clock):
    store = make_store(tokens=2, interval=timedelta(seconds=5))
    store.take("user")

    clock.advance(12)
    store.take("user")

    data = redis_client.hgetall("user")
    assert int(float(data["t"])) == 2
    assert int(float(data["i"])) == 5 * SECOND
    assert data["k"] == "1"


def test_take_sets_expiry_to_three_intervals(make_store, redis_client):
    store = make_store(tokens=5, interval=timedelta(seconds=60))
    store.take("user")

    assert 170 < redis_client.ttl("user") <= 180


def test_sub_second_interval_keeps_key_alive(make_store, redis_client):
    store = make_store(tokens=2, interval=timedelta(milliseconds=100))

    store.take("user")

    assert redis_client.exists("user")
    assert redis_client.pttl("user") > 0
    assert store.take("user").remaining == 0


def test_stored_configuration_wins_over_defaults(make_store):
    store = make_store(tokens=1)
    store.set("user", 3, timedelta(seconds=10))

    result = store.take("user")

    assert result.limit == 3
    assert result.remaining == 2
    assert result.reset == START + 10 * SECOND


def test_key_prefix(make_store, redis_client):
    store = make_store(tokens=2, key_prefix="quota:")

    store.take("user")

    assert redis_client.exists("quota:user")
    assert not redis_client.exists("user")


def test_bootstrap_expiry_replaces_configured_expiry(make_store, redis_client):
    """A first take that is denied leaves only the short bootstrap expiry"""
    store = make_store()
    store.set("user", 0, timedelta(hours=1))

    result = store.take("user")

    assert result.allowed is False
    assert result.limit == 0
    assert 20 < redis_client.ttl("user") <= 30


def test_fill_rate_comes_from_tokens_before_refill(make_store, redis_client, clock):
    """
    The refill adds elapsed ticks * interval / tokens, not a full capacity.

    Only visible when the interval in nanoseconds is smaller than the token
    count, otherwise the capacity clamp hides it.
    """
    clock.now = 10**15
    store = make_store()
    store.set("user", 5000, timedelta(microseconds=1))

    first = store.take("user")
    assert (first.limit, first.remaining, first.allowed) == (5000, 4999, True)

    clock.now += 1000
    second = store.take("user")
    # 1000 / 4999 of a token came back, which still counts as available
    assert second.allowed is True
    assert second.remaining == 0
    assert float(redis_client.hget("user", "k")) < 0

    third = store.take("user")
    assert third.allowed is False
