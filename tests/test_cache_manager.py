"""Tests for the expiring cache and its catalogue helpers."""

import json

import pytest

from storefront_client.errors import ServerError
from storefront_client.services.cache_manager import (
    BANNERS_KEY,
    CATEGORIES_KEY,
    CacheHelpers,
    CacheManager,
    product_key,
    products_key,
)

MINUTE = 60 * 1000


@pytest.fixture
def cache(store, cache_config, clock) -> CacheManager:
    return CacheManager(store, cache_config, clock)


@pytest.mark.asyncio
async def test_value_fresh_until_expiry_inclusive(cache, clock) -> None:
    await cache.set("banners", [{"id": 1}], duration=5 * MINUTE)

    clock.advance(5 * MINUTE)
    assert await cache.get("banners") == [{"id": 1}]

    clock.advance(1)
    assert await cache.get("banners") is None


@pytest.mark.asyncio
async def test_expired_read_evicts_entry(cache, clock, store) -> None:
    await cache.set("banners", ["a"], duration=MINUTE)
    clock.advance(MINUTE + 1)

    assert await cache.get("banners") is None
    assert await store.get_item("cache_banners") is None


@pytest.mark.asyncio
async def test_default_duration_is_medium_tier(cache, clock, cache_config) -> None:
    await cache.set("products_{}", {"data": []})

    clock.advance(cache_config.medium)
    assert await cache.has("products_{}")
    clock.advance(1)
    assert not await cache.has("products_{}")


@pytest.mark.asyncio
async def test_non_positive_duration_rejected(cache) -> None:
    with pytest.raises(ValueError):
        await cache.set("x", 1, duration=0)


@pytest.mark.asyncio
async def test_entry_format_in_store(cache, store, clock) -> None:
    await cache.set("categories", {"a": 1}, duration=MINUTE)

    stored = json.loads(await store.get_item("cache_categories"))
    assert stored == {"data": {"a": 1}, "timestamp": clock.now, "expiry": clock.now + MINUTE}


@pytest.mark.asyncio
async def test_get_or_set_calls_producer_once(cache) -> None:
    calls = []

    async def producer():
        calls.append(1)
        return {"success": True, "data": ["kursi"]}

    first = await cache.get_or_set("products_{}", producer)
    second = await cache.get_or_set("products_{}", producer)

    assert first == second == {"success": True, "data": ["kursi"]}
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_get_or_set_producer_failure_not_cached(cache) -> None:
    async def failing():
        raise ServerError()

    with pytest.raises(ServerError):
        await cache.get_or_set("banners", failing)

    assert not await cache.has("banners")


@pytest.mark.asyncio
async def test_get_or_set_refetches_after_expiry(cache, clock) -> None:
    values = iter(["old", "new"])

    async def producer():
        return next(values)

    assert await cache.get_or_set("k", producer, duration=MINUTE) == "old"
    clock.advance(MINUTE + 1)
    assert await cache.get_or_set("k", producer, duration=MINUTE) == "new"


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss_and_evicted(cache, store) -> None:
    await store.set_item("cache_banners", "{not json")
    await store.set_item("cache_categories", json.dumps({"data": 1}))

    assert await cache.get("banners") is None
    assert await cache.get("categories") is None
    assert await store.get_item("cache_banners") is None
    assert await store.get_item("cache_categories") is None


@pytest.mark.asyncio
async def test_clear_only_touches_cache_namespace(cache, store) -> None:
    await store.set_item("auth_token", "t")
    await store.set_item("shopping_cart", "{}")
    await cache.set("banners", [])
    await cache.set("customer_profile", {})

    removed = await cache.clear()

    assert removed == 2
    assert await store.get_all_keys() == ["auth_token", "shopping_cart"]


@pytest.mark.asyncio
async def test_clear_with_prefix(cache) -> None:
    await cache.set("customer_profile", {})
    await cache.set("customer_orders_{}", [])
    await cache.set("banners", [])

    assert await cache.clear("customer") == 2
    assert await cache.has("banners")
    assert not await cache.has("customer_profile")


@pytest.mark.asyncio
async def test_invalidate_pattern_matches_substring(cache) -> None:
    await cache.set(products_key({"page": 1}), [])
    await cache.set(product_key(5), {})
    await cache.set("banners", [])

    assert await cache.invalidate_pattern("product") == 2
    assert await cache.has("banners")


@pytest.mark.asyncio
async def test_get_info_counts_expired_and_corrupt(cache, store, clock) -> None:
    await cache.set("a", 1, duration=MINUTE)
    await cache.set("b", 2, duration=10 * MINUTE)
    await store.set_item("cache_c", "garbage")
    clock.advance(2 * MINUTE)

    info = await cache.get_info()

    assert info["total_items"] == 3
    assert info["expired_items"] == 2
    assert info["total_size"] > 0


@pytest.mark.asyncio
async def test_cleanup_removes_expired_and_corrupt(cache, store, clock) -> None:
    await cache.set("a", 1, duration=MINUTE)
    await cache.set("b", 2, duration=10 * MINUTE)
    await store.set_item("cache_c", "garbage")
    clock.advance(2 * MINUTE)

    assert await cache.cleanup() == 2
    assert sorted(await store.get_all_keys()) == ["cache_b"]


@pytest.mark.asyncio
async def test_set_many_and_get_many(cache, clock) -> None:
    await cache.set_many([
        {"key": "a", "data": 1, "duration": MINUTE},
        {"key": "b", "data": {"x": 2}},
    ])
    clock.advance(MINUTE + 1)

    result = await cache.get_many(["a", "b", "missing"])

    assert result == [
        {"key": "a", "data": None},
        {"key": "b", "data": {"x": 2}},
        {"key": "missing", "data": None},
    ]
    assert not await cache.has("a")


@pytest.mark.asyncio
async def test_prefetch_skips_present_keys(cache) -> None:
    calls = []

    async def fetcher():
        calls.append(1)
        return ["banner"]

    assert await cache.prefetch("banners", fetcher) is True
    assert await cache.prefetch("banners", fetcher) is False
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_prefetch_swallows_api_errors(cache) -> None:
    async def fetcher():
        raise ServerError()

    assert await cache.prefetch("banners", fetcher) is False
    assert not await cache.has("banners")


def test_products_key_is_order_independent() -> None:
    assert products_key({"page": 1, "search": "meja"}) == products_key({"search": "meja", "page": 1})
    assert products_key(None) == products_key({})


@pytest.mark.asyncio
async def test_helpers_use_tiers(cache, clock, cache_config) -> None:
    helpers = CacheHelpers(cache)
    await helpers.cache_categories(["kursi"])
    await helpers.cache_banners(["promo"])
    await helpers.cache_product(3, {"id": 3})
    await helpers.cache_products({"page": 1}, {"data": []})

    clock.advance(cache_config.medium + 1)
    assert await helpers.get_cached_products({"page": 1}) is None
    assert await helpers.get_cached_product(3) == {"id": 3}

    clock.advance(cache_config.long)
    assert await helpers.get_cached_banners() is None
    assert await helpers.get_cached_categories() == ["kursi"]
    assert await cache.has(CATEGORIES_KEY)
    assert not await cache.has(BANNERS_KEY)


@pytest.mark.asyncio
async def test_helpers_clear_product_and_user_cache(cache) -> None:
    helpers = CacheHelpers(cache)
    await helpers.cache_product(1, {})
    await helpers.cache_products(None, [])
    await cache.set("customer_profile", {})
    await cache.set("banners", [])

    assert await helpers.clear_product_cache() == 2
    assert await helpers.clear_user_cache() == 1
    assert await cache.has("banners")
