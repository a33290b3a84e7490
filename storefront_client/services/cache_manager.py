"""
Expiring cache over the persistent key-value store

Entries live under `<prefix><key>` (default prefix `cache_`) as serialized
CacheEntry objects. Expired entries are never returned: reads evict them
lazily and `cleanup()` sweeps them in bulk. Undecodable entries are treated
as misses and evicted.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from ..config import CacheConfig
from ..errors import ApiError, CacheCorruptionError
from ..models.cache import CacheEntry
from ..storage import KeyValueStore
from ..utils.clock import Clock, now_ms
from ..utils.logger import get_logger

logger = get_logger(__name__)

CATEGORIES_KEY = 'categories'
BANNERS_KEY = 'banners'
PAYMENT_METHODS_KEY = 'payment_methods'
CUSTOMER_PREFIX = 'customer'


def products_key(params: Optional[Dict[str, Any]] = None) -> str:
    """Cache key of a product listing query"""
    return f"products_{json.dumps(params or {}, sort_keys=True, separators=(',', ':'))}"


def product_key(product_id: int) -> str:
    return f"product_{product_id}"


class CacheManager:
    """Generic get/set-with-expiry cache"""

    def __init__(self, store: KeyValueStore, cache_config: Optional[CacheConfig] = None,
                 clock: Optional[Clock] = None):
        """
        Initialize the cache

        Args:
            store: Persistent key-value store shared with the other services
            cache_config: Duration tiers and key prefix
            clock: Epoch-millisecond clock, injectable for tests
        """
        self.store = store
        self.config = cache_config or CacheConfig()
        self.prefix = self.config.key_prefix
        self.clock = clock or now_ms

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _logical(self, storage_key: str) -> str:
        return storage_key[len(self.prefix):]

    async def _cache_keys(self) -> List[str]:
        return [k for k in await self.store.get_all_keys() if k.startswith(self.prefix)]

    async def _lookup(self, key: str) -> Optional[CacheEntry]:
        """Fresh entry for `key`, evicting it when expired or corrupt"""
        storage_key = self._key(key)
        raw = await self.store.get_item(storage_key)
        if raw is None:
            return None

        try:
            entry = CacheEntry.deserialize(storage_key, raw)
        except CacheCorruptionError as e:
            logger.warning(f"[Cache] {e}, evicting")
            await self.store.remove_item(storage_key)
            return None

        now = self.clock()
        if entry.is_expired(now):
            await self.store.remove_item(storage_key)
            logger.debug(f"[Cache] EXPIRED: {key}")
            return None

        logger.debug(f"[Cache] HIT: {key} ({entry.remaining_ms(now) // 60000}min remaining)")
        return entry

    async def set(self, key: str, data: Any, duration: Optional[int] = None) -> None:
        """
        Store `data` under `key` for `duration` milliseconds

        Args:
            key: Logical cache key
            data: JSON-serializable value
            duration: Lifetime in ms, defaults to the MEDIUM tier
        """
        if duration is None:
            duration = self.config.medium
        entry = CacheEntry.create(data, self.clock(), duration)
        await self.store.set_item(self._key(key), entry.serialize())
        logger.debug(f"[Cache] SET: {key} (expires in {round(duration / 60000)}min)")

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when absent or expired"""
        entry = await self._lookup(key)
        return entry.data if entry is not None else None

    async def has(self, key: str) -> bool:
        return await self._lookup(key) is not None

    async def delete(self, key: str) -> None:
        await self.store.remove_item(self._key(key))
        logger.debug(f"[Cache] DELETE: {key}")

    async def clear(self, prefix: Optional[str] = None) -> int:
        """
        Remove cache entries

        Args:
            prefix: Only remove logical keys starting with this prefix;
                    everything under the cache namespace when omitted

        Returns:
            Number of removed entries
        """
        scope = self._key(prefix or '')
        keys = [k for k in await self._cache_keys() if k.startswith(scope)]
        if keys:
            await self.store.multi_remove(keys)
        logger.debug(f"[Cache] CLEAR{f' {prefix}*' if prefix else ''}: {len(keys)} items removed")
        return len(keys)

    async def get_or_set(self, key: str, producer: Callable[[], Awaitable[Any]],
                         duration: Optional[int] = None) -> Any:
        """
        Cache-aside read: return the fresh cached value or produce and store it

        Producer failures propagate and nothing is cached.
        """
        entry = await self._lookup(key)
        if entry is not None:
            return entry.data

        logger.debug(f"[Cache] MISS: {key} - fetching from source")
        data = await producer()
        await self.set(key, data, duration)
        return data

    async def invalidate_pattern(self, pattern: str) -> int:
        """Delete every entry whose logical key contains `pattern`"""
        keys = [k for k in await self._cache_keys() if pattern in self._logical(k)]
        if keys:
            await self.store.multi_remove(keys)
            logger.debug(f"[Cache] INVALIDATE: {len(keys)} items matching '{pattern}'")
        return len(keys)

    async def get_info(self) -> Dict[str, int]:
        """Entry count, expired-but-unswept count (corrupt included) and serialized size"""
        keys = await self._cache_keys()
        now = self.clock()
        expired = 0
        total_size = 0

        for storage_key, raw in await self.store.multi_get(keys):
            if raw is None:
                continue
            total_size += len(raw)
            try:
                if CacheEntry.deserialize(storage_key, raw).is_expired(now):
                    expired += 1
            except CacheCorruptionError:
                expired += 1

        return {
            'total_items': len(keys),
            'expired_items': expired,
            'total_size': total_size,
        }

    async def cleanup(self) -> int:
        """Sweep expired and corrupt entries; returns the number removed"""
        keys = await self._cache_keys()
        now = self.clock()
        stale: List[str] = []

        for storage_key, raw in await self.store.multi_get(keys):
            if raw is None:
                continue
            try:
                if CacheEntry.deserialize(storage_key, raw).is_expired(now):
                    stale.append(storage_key)
            except CacheCorruptionError:
                stale.append(storage_key)

        if stale:
            await self.store.multi_remove(stale)
            logger.info(f"[Cache] CLEANUP: {len(stale)} expired items removed")
        return len(stale)

    async def set_many(self, items: Iterable[Dict[str, Any]]) -> None:
        """
        Batch set

        Args:
            items: Dicts with `key`, `data` and optional `duration`
        """
        now = self.clock()
        pairs = []
        for item in items:
            duration = item.get('duration')
            entry = CacheEntry.create(item['data'], now, self.config.medium if duration is None else duration)
            pairs.append((self._key(item['key']), entry.serialize()))

        await self.store.multi_set(pairs)
        logger.debug(f"[Cache] SET MANY: {len(pairs)} items")

    async def get_many(self, keys: List[str]) -> List[Dict[str, Any]]:
        """Batch get preserving input order; expired and corrupt entries read as None and are evicted"""
        now = self.clock()
        results: List[Dict[str, Any]] = []
        stale: List[str] = []

        rows = await self.store.multi_get([self._key(k) for k in keys])
        for key, (storage_key, raw) in zip(keys, rows):
            data = None
            if raw is not None:
                try:
                    entry = CacheEntry.deserialize(storage_key, raw)
                    if entry.is_expired(now):
                        stale.append(storage_key)
                    else:
                        data = entry.data
                except CacheCorruptionError:
                    stale.append(storage_key)
            results.append({'key': key, 'data': data})

        if stale:
            await self.store.multi_remove(stale)
        return results

    async def prefetch(self, key: str, fetcher: Callable[[], Awaitable[Any]],
                       duration: Optional[int] = None) -> bool:
        """Populate `key` only when absent; returns True if a fetch happened"""
        if await self.has(key):
            return False
        try:
            data = await fetcher()
        except ApiError as e:
            logger.warning(f"[Cache] Failed to prefetch {key}: {e!r}")
            return False

        await self.set(key, data, duration)
        logger.debug(f"[Cache] PREFETCH: {key}")
        return True


class CacheHelpers:
    """Shortcuts for the catalogue keys shared with the API service"""

    def __init__(self, cache: CacheManager):
        self.cache = cache

    async def cache_products(self, params: Optional[Dict[str, Any]], data: Any) -> None:
        await self.cache.set(products_key(params), data, self.cache.config.medium)

    async def get_cached_products(self, params: Optional[Dict[str, Any]]) -> Optional[Any]:
        return await self.cache.get(products_key(params))

    async def cache_product(self, product_id: int, data: Any) -> None:
        await self.cache.set(product_key(product_id), data, self.cache.config.long)

    async def get_cached_product(self, product_id: int) -> Optional[Any]:
        return await self.cache.get(product_key(product_id))

    async def cache_categories(self, data: Any) -> None:
        await self.cache.set(CATEGORIES_KEY, data, self.cache.config.very_long)

    async def get_cached_categories(self) -> Optional[Any]:
        return await self.cache.get(CATEGORIES_KEY)

    async def cache_banners(self, data: Any) -> None:
        await self.cache.set(BANNERS_KEY, data, self.cache.config.long)

    async def get_cached_banners(self) -> Optional[Any]:
        return await self.cache.get(BANNERS_KEY)

    async def clear_product_cache(self) -> int:
        """Drop product listings and product details"""
        return await self.cache.invalidate_pattern('product')

    async def clear_user_cache(self) -> int:
        """Drop every customer-scoped entry"""
        return await self.cache.clear(CUSTOMER_PREFIX)
