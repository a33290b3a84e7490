"""Service layer for the storefront client"""

from .api_service import ApiService
from .cache_manager import CacheHelpers, CacheManager
from .cart_service import CartService
from .network_service import NetworkService, get_retry_delay, is_network_error, should_queue_request
from .offline_queue import OfflineQueueService
from .search_service import SearchService, calculate_relevance, format_results_count, normalize_query

__all__ = [
    'ApiService',
    'CacheHelpers',
    'CacheManager',
    'CartService',
    'NetworkService',
    'get_retry_delay',
    'is_network_error',
    'should_queue_request',
    'OfflineQueueService',
    'SearchService',
    'calculate_relevance',
    'format_results_count',
    'normalize_query'
]
