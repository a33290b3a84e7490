"""Client-side data access layer for the storefront REST API"""

from .app import Storefront, build_storefront
from .auth import AuthSession, LoginNavigator, NullNavigator
from .config import Config
from .errors import (
    ApiError,
    AuthenticationError,
    CartError,
    CartItemNotFoundError,
    ClientError,
    ErrorHandler,
    NetworkError,
    RequestQueuedError,
    ResponseParseError,
    ServerError,
    StockError,
    ValidationError,
)
from .http_client import HttpClient
from .storage import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore, create_store

__version__ = "1.0.0"

__all__ = [
    'Storefront',
    'build_storefront',
    'AuthSession',
    'LoginNavigator',
    'NullNavigator',
    'Config',
    'ApiError',
    'AuthenticationError',
    'CartError',
    'CartItemNotFoundError',
    'ClientError',
    'ErrorHandler',
    'NetworkError',
    'RequestQueuedError',
    'ResponseParseError',
    'ServerError',
    'StockError',
    'ValidationError',
    'HttpClient',
    'InMemoryKeyValueStore',
    'KeyValueStore',
    'RedisKeyValueStore',
    'create_store'
]
