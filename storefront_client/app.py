"""
Composition root

Builds exactly one instance of every service and wires them together. There
are no module-level singletons; embedders keep the returned Storefront.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import httpx

from .auth import AuthSession, LoginNavigator, NullNavigator
from .config import Config
from .errors import ApiError
from .http_client import HttpClient
from .models.queue import QueueItem
from .services.api_service import ApiService
from .services.cache_manager import CacheHelpers, CacheManager
from .services.cart_service import CartService
from .services.network_service import NetworkService
from .services.offline_queue import OfflineQueueService
from .services.search_service import SearchService
from .storage import KeyValueStore, RedisKeyValueStore, create_store
from .utils.clock import Clock, now_ms
from .utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class Storefront:
    """Every service of the data layer, wired to one store"""
    config: Config
    store: KeyValueStore
    session: AuthSession
    http: HttpClient
    cache: CacheManager
    cache_helpers: CacheHelpers
    network: NetworkService
    queue: OfflineQueueService
    cart: CartService
    search: SearchService
    api: ApiService

    async def start(self) -> None:
        """Sweep expired cache, load persisted state and start connectivity polling"""
        if isinstance(self.store, RedisKeyValueStore):
            await self.store.connect()

        removed = await self.cache.cleanup()
        await self.cart.load_cart()
        await self.search.load_search_history()
        await self.network.start()
        await self.queue.start()

        logger.info(
            f"Storefront services started: {removed} expired cache entries removed, "
            f"{len(self.queue)} queued writes, online={self.network.is_online()}"
        )

    async def close(self) -> None:
        self.queue.stop()
        await self.network.stop()
        if isinstance(self.store, RedisKeyValueStore):
            await self.store.close()
        logger.info("Storefront services stopped")


async def _log_dropped(item: QueueItem, error: ApiError) -> None:
    logger.warning(f"[Queue] Write lost after {item.retry_count} attempts: {item.method} {item.endpoint}")


def build_storefront(
    config: Optional[Config] = None,
    store: Optional[KeyValueStore] = None,
    navigator: Optional[LoginNavigator] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Optional[Clock] = None,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    on_drop: Optional[Callable[[QueueItem, ApiError], Awaitable[None]]] = None
) -> Storefront:
    """
    Wire the data layer

    Args:
        config: Configuration, read from the environment when omitted
        store: Key-value store, built from `config.storage` when omitted
        navigator: Receives redirect-to-login on session expiry
        transport: httpx transport override (mock transports in tests)
        clock: Epoch-millisecond clock shared by the time-aware services
        sleep: Retry backoff sleeper
        on_drop: Hook for writes dropped from the offline queue

    Returns:
        Storefront holding one instance of each service
    """
    config = config or Config()
    store = store if store is not None else create_store(config.storage)
    clock = clock or now_ms

    session = AuthSession(store)
    http = HttpClient(config.api, session, navigator or NullNavigator(), transport=transport, sleep=sleep)
    cache = CacheManager(store, config.cache, clock)
    network = NetworkService(lambda: http.check_status(config.network.status_endpoint), config.network, clock)
    queue = OfflineQueueService(store, http, network, config.queue, clock, on_drop=on_drop or _log_dropped)
    cart = CartService(store)
    search = SearchService(store, clock)
    api = ApiService(http, cache, session, queue, cart, search, config.cache)

    queue.on_replayed = api.handle_replayed

    return Storefront(
        config=config,
        store=store,
        session=session,
        http=http,
        cache=cache,
        cache_helpers=CacheHelpers(cache),
        network=network,
        queue=queue,
        cart=cart,
        search=search,
        api=api,
    )
