"""Tests for the key-value storage backends."""

from typing import Dict, List, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from storefront_client.config import StorageConfig
from storefront_client.errors import StorageError
from storefront_client.storage import InMemoryKeyValueStore, RedisKeyValueStore, create_store


class FakeRedis:
    """Minimal async double of the redis client commands the store uses."""

    def __init__(self, reachable: bool = True):
        self.data: Dict[str, str] = {}
        self.reachable = reachable
        self.closed = False

    async def ping(self) -> bool:
        if not self.reachable:
            raise RedisConnectionError("Connection refused")
        return True

    async def aclose(self) -> None:
        self.closed = True

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def mget(self, keys: List[str]) -> List[Optional[str]]:
        return [self.data.get(key) for key in keys]

    async def mset(self, mapping: Dict[str, str]) -> None:
        self.data.update(mapping)

    async def scan_iter(self, match: str = "*"):
        prefix = match.rstrip("*")
        for key in list(self.data):
            if key.startswith(prefix):
                yield key


@pytest.mark.asyncio
async def test_in_memory_store_operations() -> None:
    store = InMemoryKeyValueStore({"a": "1"})

    await store.set_item("b", "2")
    await store.multi_set([("c", "3"), ("d", "4")])
    await store.remove_item("a")
    await store.remove_item("missing")

    assert await store.get_item("b") == "2"
    assert await store.multi_get(["c", "x"]) == [("c", "3"), ("x", None)]
    await store.multi_remove(["c", "d"])
    assert await store.get_all_keys() == ["b"]


@pytest.mark.asyncio
async def test_redis_store_namespaces_keys() -> None:
    client = FakeRedis()
    client.data["other:shopping_cart"] = "{}"
    store = RedisKeyValueStore(namespace="toko", client=client)

    await store.set_item("auth_token", "t")
    await store.multi_set([("cache_a", "1"), ("cache_b", "2")])

    assert client.data["toko:auth_token"] == "t"
    assert await store.get_item("auth_token") == "t"
    assert await store.multi_get(["cache_a", "cache_z"]) == [("cache_a", "1"), ("cache_z", None)]
    assert sorted(await store.get_all_keys()) == ["auth_token", "cache_a", "cache_b"]

    await store.multi_remove(["cache_a", "cache_b"])
    await store.remove_item("auth_token")
    assert await store.get_all_keys() == []
    assert "other:shopping_cart" in client.data


@pytest.mark.asyncio
async def test_redis_empty_batches_skip_the_server() -> None:
    store = RedisKeyValueStore(client=FakeRedis())

    assert await store.multi_get([]) == []
    await store.multi_set([])
    await store.multi_remove([])


@pytest.mark.asyncio
async def test_redis_connect_failure_raises_storage_error() -> None:
    store = RedisKeyValueStore(client=FakeRedis(reachable=False))

    with pytest.raises(StorageError):
        await store.connect()


@pytest.mark.asyncio
async def test_redis_close() -> None:
    client = FakeRedis()
    store = RedisKeyValueStore(client=client)

    await store.connect()
    await store.close()
    assert client.closed


def test_create_store_selects_backend() -> None:
    assert isinstance(create_store(StorageConfig()), InMemoryKeyValueStore)
    redis_store = create_store(StorageConfig(backend="redis", namespace="toko"))
    assert isinstance(redis_store, RedisKeyValueStore)
    assert redis_store.namespace == "toko"
