"""
Storefront API service

Resource-oriented facade over the HTTP client, cache, offline queue and cart.
Semi-static reads go through the cache with a duration tier matching their
volatility; writes invalidate the cached reads they affect, both when they
succeed directly and when they are replayed from the offline queue.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from ..auth import AuthSession
from ..config import API_ENDPOINTS, CacheConfig
from ..errors import ApiError
from ..http_client import HttpClient
from ..models.queue import QueueItem
from ..utils.logger import get_logger
from .cache_manager import (
    BANNERS_KEY,
    CATEGORIES_KEY,
    CUSTOMER_PREFIX,
    PAYMENT_METHODS_KEY,
    CacheManager,
    product_key,
    products_key,
)
from .cart_service import CartService
from .offline_queue import OfflineQueueService
from .search_service import SearchService

logger = get_logger(__name__)

PROFILE_KEY = 'customer_profile'
DASHBOARD_KEY = 'customer_dashboard'
ORDERS_KEY_PREFIX = 'customer_orders'


def orders_key(params: Optional[Dict[str, Any]] = None) -> str:
    return f"{ORDERS_KEY_PREFIX}_{json.dumps(params or {}, sort_keys=True, separators=(',', ':'))}"


def _query(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop unset query parameters"""
    return {k: v for k, v in (params or {}).items() if v is not None and v != ''}


def _listing(response: Dict[str, Any]) -> Dict[str, Any]:
    return {'data': response.get('data'), 'meta': response.get('meta')}


class ApiService:
    """Typed access to every backend resource"""

    def __init__(
        self,
        http_client: HttpClient,
        cache: CacheManager,
        session: AuthSession,
        queue: OfflineQueueService,
        cart: CartService,
        search: Optional[SearchService] = None,
        cache_config: Optional[CacheConfig] = None
    ):
        self.http = http_client
        self.cache = cache
        self.session = session
        self.queue = queue
        self.cart = cart
        self.search = search
        self.durations = cache_config or cache.config

        logger.info("ApiService initialized")

    # ===== Cache invalidation =====

    async def _invalidate_for(self, endpoint: str) -> None:
        """Drop cached reads affected by a write to `endpoint`"""
        orders = API_ENDPOINTS["customer"]["orders"]
        profile = API_ENDPOINTS["auth"]["profile"]

        if endpoint.startswith(orders):
            await self.cache.invalidate_pattern(ORDERS_KEY_PREFIX)
            await self.cache.delete(DASHBOARD_KEY)
        elif endpoint.startswith(profile):
            await self.cache.delete(PROFILE_KEY)
            await self.cache.delete(DASHBOARD_KEY)

    async def handle_replayed(self, item: QueueItem, response: Dict[str, Any]) -> None:
        """Offline-queue hook: apply the same invalidation as a direct write"""
        await self._invalidate_for(item.endpoint)

    async def _write(self, method: str, endpoint: str, data: Optional[Any] = None) -> Any:
        """
        Authenticated write that falls back to the offline queue on network failure

        Raises:
            RequestQueuedError: The write was queued for replay
        """
        response = await self.queue.request_or_queue(method, endpoint, data)
        await self._invalidate_for(endpoint)
        return response.get('data')

    # ===== Public =====

    async def check_api_status(self) -> Any:
        response = await self.http.get(API_ENDPOINTS["public"]["status"])
        return response.get('data')

    async def get_banners(self, use_cache: bool = True) -> Any:
        async def fetch():
            response = await self.http.get(API_ENDPOINTS["public"]["banners"])
            return response.get('data')

        if use_cache:
            return await self.cache.get_or_set(BANNERS_KEY, fetch, self.durations.long)
        return await fetch()

    async def get_product_categories(self, use_cache: bool = True) -> Any:
        async def fetch():
            response = await self.http.get(API_ENDPOINTS["public"]["categories"])
            return response.get('data')

        if use_cache:
            return await self.cache.get_or_set(CATEGORIES_KEY, fetch, self.durations.very_long)
        return await fetch()

    async def search_products(self, params: Optional[Dict[str, Any]] = None,
                              use_cache: bool = True) -> Dict[str, Any]:
        """
        List or search products

        Plain listings are cached; free-text searches are not, and are
        recorded in the search history when one is attached.

        Args:
            params: search, kategori_id, min_harga, max_harga, sort_by, per_page, page
            use_cache: Read through the cache for plain listings
        """
        query = _query(params)

        async def fetch():
            response = await self.http.get(API_ENDPOINTS["public"]["products"], params=query)
            return _listing(response)

        if use_cache and not query.get('search'):
            return await self.cache.get_or_set(products_key(query), fetch, self.durations.medium)

        result = await fetch()
        if query.get('search') and self.search is not None:
            meta = result.get('meta') or {}
            total = meta.get('total', len(result.get('data') or []))
            await self.search.add_search_query(str(query['search']), total)
        return result

    async def get_product(self, product_id: int, use_cache: bool = True) -> Any:
        async def fetch():
            response = await self.http.get(API_ENDPOINTS["public"]["product_detail"](product_id))
            return response.get('data')

        if use_cache:
            return await self.cache.get_or_set(product_key(product_id), fetch, self.durations.long)
        return await fetch()

    # ===== Authentication =====

    async def login(self, credentials: Dict[str, Any]) -> Dict[str, Any]:
        """
        Customer login; stores the token and identity on success

        Args:
            credentials: Dict with email and password
        """
        response = await self.http.post(API_ENDPOINTS["auth"]["login"], credentials)
        data = response.get('data') or {}

        # Identity-scoped entries of a previous customer must not leak
        await self.cache.clear(CUSTOMER_PREFIX)
        if data.get('token'):
            await self.session.save_login(data['token'], data.get('customer'))
        logger.info("Customer login successful")
        return data

    async def register(self, registration: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http.post(API_ENDPOINTS["auth"]["register"], registration)
        data = response.get('data') or {}
        if data.get('token'):
            await self.cache.clear(CUSTOMER_PREFIX)
            await self.session.save_login(data['token'], data.get('customer'))
        return data

    async def logout(self) -> None:
        """
        Log out remotely when possible, then clear session, user-scoped cache
        and queued writes of this customer
        """
        try:
            await self.http.post(API_ENDPOINTS["auth"]["logout"], {}, require_auth=True, skip_retry=True)
        except ApiError as e:
            # Token may already be invalid; local cleanup still applies
            logger.warning(f"Logout request failed: {e!r}")

        await self.session.logout()
        await self.cache.clear('user')
        await self.cache.clear(CUSTOMER_PREFIX)
        await self.queue.clear_queue()
        logger.info("Customer logged out")

    # ===== Profile =====

    async def get_customer_profile(self, use_cache: bool = True) -> Any:
        async def fetch():
            response = await self.http.get(API_ENDPOINTS["auth"]["profile"], require_auth=True)
            return response.get('data')

        if use_cache:
            return await self.cache.get_or_set(PROFILE_KEY, fetch, self.durations.medium)
        return await fetch()

    async def update_customer_profile(self, data: Dict[str, Any]) -> Any:
        return await self._write("PUT", API_ENDPOINTS["auth"]["profile"], data)

    async def get_customer_dashboard(self, use_cache: bool = True) -> Any:
        async def fetch():
            response = await self.http.get(API_ENDPOINTS["auth"]["dashboard"], require_auth=True)
            return response.get('data')

        if use_cache:
            return await self.cache.get_or_set(DASHBOARD_KEY, fetch, self.durations.short)
        return await fetch()

    # ===== Addresses =====

    async def get_customer_addresses(self) -> Any:
        response = await self.http.get(API_ENDPOINTS["customer"]["addresses"], require_auth=True)
        return response.get('data')

    async def add_customer_address(self, data: Dict[str, Any]) -> Any:
        return await self._write("POST", API_ENDPOINTS["customer"]["addresses"], data)

    async def update_customer_address(self, address_id: int, data: Dict[str, Any]) -> Any:
        return await self._write("PUT", API_ENDPOINTS["customer"]["address_detail"](address_id), data)

    async def delete_customer_address(self, address_id: int) -> None:
        await self._write("DELETE", API_ENDPOINTS["customer"]["address_detail"](address_id))

    # ===== Orders =====

    async def create_order(self, data: Dict[str, Any]) -> Any:
        """
        Place an order

        Raises:
            RequestQueuedError: Network failure; the order waits in the offline queue
        """
        return await self._write("POST", API_ENDPOINTS["customer"]["orders"], data)

    async def get_customer_orders(self, params: Optional[Dict[str, Any]] = None,
                                  use_cache: bool = True) -> Dict[str, Any]:
        """
        Paginated order list

        Args:
            params: page, per_page
            use_cache: Read through the short-lived cache
        """
        query = _query(params)

        async def fetch():
            response = await self.http.get(API_ENDPOINTS["customer"]["orders"], require_auth=True, params=query)
            return _listing(response)

        if use_cache:
            return await self.cache.get_or_set(orders_key(query), fetch, self.durations.short)
        return await fetch()

    async def get_order_details(self, order_id: int) -> Any:
        response = await self.http.get(API_ENDPOINTS["customer"]["order_detail"](order_id), require_auth=True)
        return response.get('data')

    async def cancel_order(self, order_id: int) -> Any:
        return await self._write("POST", API_ENDPOINTS["customer"]["cancel_order"](order_id), {})

    # ===== Transactions and points =====

    async def get_customer_transactions(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Args:
            params: status, start_date, end_date, page, per_page
        """
        response = await self.http.get(API_ENDPOINTS["customer"]["transactions"], require_auth=True,
                                       params=_query(params))
        return _listing(response)

    async def get_transaction_details(self, transaction_id: int) -> Any:
        response = await self.http.get(API_ENDPOINTS["customer"]["transaction_detail"](transaction_id),
                                       require_auth=True)
        return response.get('data')

    async def get_points_history(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.http.get(API_ENDPOINTS["customer"]["points_history"], require_auth=True,
                                       params=_query(params))
        return _listing(response)

    # ===== Wishlist =====

    async def get_wishlist(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.http.get(API_ENDPOINTS["customer"]["wishlist"], require_auth=True,
                                       params=_query(params))
        return _listing(response)

    async def add_to_wishlist(self, produk_id: int, varian_id: Optional[int] = None) -> Any:
        return await self._write("POST", API_ENDPOINTS["customer"]["wishlist"],
                                 {'produk_id': produk_id, 'varian_id': varian_id})

    async def remove_from_wishlist(self, wishlist_id: int) -> None:
        await self._write("DELETE", API_ENDPOINTS["customer"]["remove_wishlist"](wishlist_id))

    # ===== Promotions and payment =====

    async def get_promotions(self) -> Any:
        response = await self.http.get(API_ENDPOINTS["customer"]["promotions"], require_auth=True)
        return response.get('data')

    async def validate_promo_code(self, kode_promo: str, total_belanja: float) -> Any:
        # Validation only makes sense online; never queued
        response = await self.http.post(
            API_ENDPOINTS["customer"]["validate_promo"],
            {'kode_promo': kode_promo, 'total_belanja': total_belanja},
            require_auth=True
        )
        return response.get('data')

    async def get_payment_methods(self, use_cache: bool = True) -> Any:
        async def fetch():
            response = await self.http.get(API_ENDPOINTS["customer"]["payment_methods"], require_auth=True)
            return response.get('data')

        if use_cache:
            return await self.cache.get_or_set(PAYMENT_METHODS_KEY, fetch, self.durations.long)
        return await fetch()

    # ===== Notifications =====

    async def get_notifications(self, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self.http.get(API_ENDPOINTS["customer"]["notifications"], require_auth=True,
                                       params=_query(params))
        return _listing(response)

    async def mark_notification_as_read(self, notification_id: int) -> None:
        await self._write("POST", API_ENDPOINTS["customer"]["mark_notification_read"](notification_id), {})

    # ===== Utility =====

    async def upload_file(self, endpoint: str, files: Dict[str, Any],
                          data: Optional[Dict[str, str]] = None) -> Any:
        response = await self.http.upload(endpoint, files, data)
        return response.get('data')

    async def clear_all_cache(self) -> int:
        return await self.cache.clear()

    async def get_cache_info(self) -> Dict[str, int]:
        return await self.cache.get_info()

    async def cleanup_cache(self) -> int:
        return await self.cache.cleanup()

    async def prefetch_common_data(self) -> None:
        """Warm banners, categories and payment methods in parallel"""
        tasks = [
            self.cache.prefetch(BANNERS_KEY, lambda: self.get_banners(False), self.durations.long),
            self.cache.prefetch(CATEGORIES_KEY, lambda: self.get_product_categories(False),
                                self.durations.very_long),
        ]
        if await self.session.is_authenticated():
            tasks.append(self.cache.prefetch(PAYMENT_METHODS_KEY, lambda: self.get_payment_methods(False),
                                             self.durations.long))
        await asyncio.gather(*tasks)

    async def test_connection(self) -> bool:
        try:
            await self.check_api_status()
            return True
        except ApiError:
            return False

    # ===== Cart reconciliation =====

    async def _fetch_fresh_products(self, product_ids: List[int]) -> Dict[int, Dict[str, Any]]:
        """Fetch products in parallel, bypassing and then refreshing the cache"""
        results = await asyncio.gather(
            *(self.get_product(pid, use_cache=False) for pid in product_ids),
            return_exceptions=True
        )

        products: Dict[int, Dict[str, Any]] = {}
        for pid, result in zip(product_ids, results):
            if isinstance(result, ApiError):
                logger.warning(f"[Cart] Could not refresh product {pid}: {result!r}")
                continue
            if isinstance(result, BaseException):
                raise result
            if result:
                products[pid] = result
                await self.cache.set(product_key(pid), result, self.durations.long)
        return products

    async def sync_cart_with_latest_data(self) -> Dict[str, Any]:
        """
        Refresh every cart line from the latest product data

        Products that cannot be fetched are skipped; their lines are left as is.

        Returns:
            Result of CartService.sync_with_product_data
        """
        cart = await self.cart.get_cart()
        product_ids = list(dict.fromkeys(item.produk_id for item in cart.items))
        if not product_ids:
            return {'updated': False, 'changes': []}

        products = await self._fetch_fresh_products(product_ids)

        product_data = []
        for item in cart.items:
            product = products.get(item.produk_id)
            if product is None:
                continue

            variant = None
            if item.varian_id:
                variant = next((v for v in product.get('varian') or [] if v.get('id') == item.varian_id), None)
                if variant is None:
                    continue

            images = product.get('gambar') or []
            main_image = next((g for g in images if g.get('gambar_utama')), images[0] if images else None)

            harga = (variant or {}).get('harga_jual') or product.get('harga_jual_min') or item.harga
            stok = variant.get('stok') if variant is not None else None
            if stok is None:
                stok = product.get('total_stok') or 0

            product_data.append({
                'produk_id': item.produk_id,
                'varian_id': item.varian_id,
                'harga': harga,
                'stok_tersedia': stok,
                'nama_produk': product.get('nama_produk'),
                'nama_varian': variant.get('nama_varian') if variant else None,
                'gambar_url': main_image.get('url') if main_image else None,
            })

        return await self.cart.sync_with_product_data(product_data)
