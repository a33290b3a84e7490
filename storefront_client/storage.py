"""Persistent key-value storage backends

Every component persists JSON strings under its own keys. The store is the
only shared mutable resource, so components namespace their keys
(`cache_*`, one queue key, one cart key, one search-history key).
"""

from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError

from .config import StorageConfig
from .errors import StorageError
from .utils.logger import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Async string-keyed storage capability"""

    async def get_item(self, key: str) -> Optional[str]: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def remove_item(self, key: str) -> None: ...

    async def multi_get(self, keys: Sequence[str]) -> List[Tuple[str, Optional[str]]]: ...

    async def multi_set(self, pairs: Iterable[Tuple[str, str]]) -> None: ...

    async def multi_remove(self, keys: Sequence[str]) -> None: ...

    async def get_all_keys(self) -> List[str]: ...


class InMemoryKeyValueStore:
    """Dict-backed store, process lifetime only"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    async def multi_get(self, keys: Sequence[str]) -> List[Tuple[str, Optional[str]]]:
        return [(key, self._data.get(key)) for key in keys]

    async def multi_set(self, pairs: Iterable[Tuple[str, str]]) -> None:
        for key, value in pairs:
            self._data[key] = value

    async def multi_remove(self, keys: Sequence[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def get_all_keys(self) -> List[str]:
        return list(self._data.keys())


class RedisKeyValueStore:
    """Redis-backed store; keys are optionally namespaced with `<namespace>:`"""

    def __init__(self, host: str = "localhost", port: int = 6379, db: int = 0,
                 namespace: str = "", client: Optional[redis.Redis] = None):
        self.client = client or redis.Redis(host=host, port=port, db=db, decode_responses=True)
        self.namespace = namespace
        self._prefix = f"{namespace}:" if namespace else ""

    async def connect(self) -> None:
        """Verify the server is reachable"""
        try:
            await self.client.ping()
            logger.info(f"Connected to Redis key-value store (namespace='{self.namespace}')")
        except RedisConnectionError as e:
            logger.error(f"Could not connect to Redis: {e}")
            raise StorageError(f"Redis unavailable: {e}") from e

    async def close(self) -> None:
        await self.client.aclose()

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _strip(self, key: str) -> str:
        return key[len(self._prefix):] if self._prefix and key.startswith(self._prefix) else key

    async def get_item(self, key: str) -> Optional[str]:
        return await self.client.get(self._key(key))

    async def set_item(self, key: str, value: str) -> None:
        await self.client.set(self._key(key), value)

    async def remove_item(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def multi_get(self, keys: Sequence[str]) -> List[Tuple[str, Optional[str]]]:
        if not keys:
            return []
        values = await self.client.mget([self._key(k) for k in keys])
        return list(zip(keys, values))

    async def multi_set(self, pairs: Iterable[Tuple[str, str]]) -> None:
        mapping = {self._key(k): v for k, v in pairs}
        if mapping:
            await self.client.mset(mapping)

    async def multi_remove(self, keys: Sequence[str]) -> None:
        if keys:
            await self.client.delete(*[self._key(k) for k in keys])

    async def get_all_keys(self) -> List[str]:
        pattern = f"{self._prefix}*" if self._prefix else "*"
        return [self._strip(key) async for key in self.client.scan_iter(match=pattern)]


def create_store(storage_config: StorageConfig) -> KeyValueStore:
    """Build the configured store backend"""
    if storage_config.backend == "redis":
        return RedisKeyValueStore(
            host=storage_config.redis_host,
            port=storage_config.redis_port,
            db=storage_config.redis_db,
            namespace=storage_config.namespace,
        )
    return InMemoryKeyValueStore()
