"""Data models for the storefront client"""

from .cache import CacheEntry
from .cart import Cart, CartItem, cart_item_id
from .network import NetworkState
from .queue import QueueItem, QUEUEABLE_METHODS
from .search import SearchHistoryEntry

__all__ = [
    'CacheEntry',
    'Cart',
    'CartItem',
    'cart_item_id',
    'NetworkState',
    'QueueItem',
    'QUEUEABLE_METHODS',
    'SearchHistoryEntry'
]
