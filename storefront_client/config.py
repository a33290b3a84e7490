"""Configuration management for the storefront client data layer"""

import os
from dataclasses import dataclass
from typing import Optional, Dict, Any
from dotenv import load_dotenv
import logging

# Load environment variables
load_dotenv()


@dataclass
class APIConfig:
    """REST API configuration"""
    base_url: str
    timeout: float = 15.0          # seconds per attempt
    retry_attempts: int = 3
    retry_delay: float = 1.0       # seconds, multiplied by the attempt number
    upload_timeout_multiplier: int = 3
    debug_curl: bool = False

    @property
    def default_headers(self) -> Dict[str, str]:
        """Default headers for JSON requests"""
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }


@dataclass
class CacheConfig:
    """Cache duration tiers in milliseconds"""
    short: int = 5 * 60 * 1000
    medium: int = 30 * 60 * 1000
    long: int = 2 * 60 * 60 * 1000
    very_long: int = 24 * 60 * 60 * 1000
    key_prefix: str = "cache_"


@dataclass
class NetworkConfig:
    """Connectivity polling configuration"""
    poll_interval: float = 5.0             # seconds between timer ticks
    connectivity_check_interval: int = 30000  # minimum ms between checks
    status_endpoint: str = "/status"


@dataclass
class QueueConfig:
    """Offline write-queue configuration"""
    storage_key: str = "offline_queue"
    default_max_retries: int = 3


@dataclass
class StorageConfig:
    """Persistent key-value store configuration"""
    backend: str = "memory"  # memory, redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    namespace: str = ""


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = None


# Per-environment API defaults
ENVIRONMENTS: Dict[str, Dict[str, Any]] = {
    "development": {
        "timeout": 15.0,
        "retry_attempts": 3,
        "retry_delay": 1.0,
    },
    "staging": {
        "timeout": 10.0,
        "retry_attempts": 2,
        "retry_delay": 1.5,
    },
    "production": {
        "timeout": 8.0,
        "retry_attempts": 2,
        "retry_delay": 2.0,
    },
}

DEFAULT_BASE_URL = "https://gudangperabot.com/api"


# API Endpoints
API_ENDPOINTS = {
    "public": {
        "status": "/status",
        "banners": "/public/banners",
        "products": "/public/products",
        "product_detail": lambda product_id: f"/public/products/{product_id}",
        "categories": "/public/product-categories",
    },
    "auth": {
        "login": "/customer/login",
        "register": "/customer/register",
        "logout": "/customer/logout",
        "profile": "/customer/profile",
        "dashboard": "/customer/dashboard",
    },
    "customer": {
        "addresses": "/customer/addresses",
        "address_detail": lambda address_id: f"/customer/addresses/{address_id}",
        "orders": "/customer/orders",
        "order_detail": lambda order_id: f"/customer/orders/{order_id}",
        "cancel_order": lambda order_id: f"/customer/orders/{order_id}/cancel",
        "transactions": "/customer/transactions",
        "transaction_detail": lambda transaction_id: f"/customer/transactions/{transaction_id}",
        "points_history": "/customer/points-history",
        "wishlist": "/customer/wishlist",
        "remove_wishlist": lambda wishlist_id: f"/customer/wishlist/{wishlist_id}",
        "promotions": "/customer/promotions",
        "validate_promo": "/customer/promotions/validate",
        "payment_methods": "/customer/payment-methods",
        "notifications": "/customer/notifications",
        "mark_notification_read": lambda notification_id: f"/customer/notifications/{notification_id}/read",
    },
}


class HTTP_STATUS:
    OK = 200
    CREATED = 201
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    TIMEOUT = 408
    VALIDATION_ERROR = 422
    SERVER_ERROR = 500
    NETWORK_FAILURE = 0  # no HTTP response at all


ERROR_MESSAGES = {
    "NETWORK_ERROR": "Network error. Please check your connection.",
    "UNAUTHORIZED": "Your session has expired. Please login again.",
    "SERVER_ERROR": "Server error. Please try again later.",
    "VALIDATION_ERROR": "Please check your input and try again.",
    "NOT_FOUND": "Requested resource not found.",
    "TIMEOUT": "Request timeout. Please try again.",
    "INVALID_RESPONSE": "The server returned an invalid response.",
    "UNKNOWN": "An unexpected error occurred.",
}


def get_current_environment() -> str:
    """Resolve the active environment profile, falling back to development"""
    env = os.getenv("STOREFRONT_ENV", "development").lower()
    if env not in ENVIRONMENTS:
        return "development"
    return env


class Config:
    """Main configuration class"""

    def __init__(self, environment: Optional[str] = None):
        self.environment = environment if environment in ENVIRONMENTS else get_current_environment()
        defaults = ENVIRONMENTS[self.environment]

        self.api = APIConfig(
            base_url=os.getenv("API_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
            timeout=float(os.getenv("API_TIMEOUT", defaults["timeout"])),
            retry_attempts=int(os.getenv("API_RETRY_ATTEMPTS", defaults["retry_attempts"])),
            retry_delay=float(os.getenv("API_RETRY_DELAY", defaults["retry_delay"])),
            upload_timeout_multiplier=int(os.getenv("API_UPLOAD_TIMEOUT_MULTIPLIER", "3")),
            debug_curl=os.getenv("DEBUG_CURL_LOGGING", "false").lower() == "true",
        )

        self.cache = CacheConfig()

        self.network = NetworkConfig(
            poll_interval=float(os.getenv("NETWORK_POLL_INTERVAL", "5")),
            connectivity_check_interval=int(os.getenv("NETWORK_CHECK_INTERVAL_MS", "30000")),
            status_endpoint=os.getenv("NETWORK_STATUS_ENDPOINT", API_ENDPOINTS["public"]["status"]),
        )

        self.queue = QueueConfig(
            storage_key=os.getenv("OFFLINE_QUEUE_KEY", "offline_queue"),
            default_max_retries=int(os.getenv("OFFLINE_QUEUE_MAX_RETRIES", "3")),
        )

        self.storage = StorageConfig(
            backend=os.getenv("STORAGE_BACKEND", "memory").lower(),
            redis_host=os.getenv("REDIS_HOST", "localhost"),
            redis_port=int(os.getenv("REDIS_PORT", "6379")),
            redis_db=int(os.getenv("REDIS_DB", "0")),
            namespace=os.getenv("STORAGE_NAMESPACE", ""),
        )

        self.logging = LoggingConfig(
            level=os.getenv("LOG_LEVEL", "DEBUG" if self.debug_mode else "INFO"),
            file=os.getenv("LOG_FILE"),
        )

    @property
    def debug_mode(self) -> bool:
        """Verbose diagnostics are only enabled for development builds"""
        return self.environment == "development"

    def configure_logging(self) -> logging.Logger:
        """Configure the root logger from the logging section"""
        from .utils.logger import setup_logging
        return setup_logging(level=self.logging.level, log_file=self.logging.file)

    def validate(self) -> bool:
        """Validate configuration"""
        errors = []

        if not self.api.base_url:
            errors.append("API_BASE_URL is required")
        if self.api.timeout <= 0:
            errors.append("API_TIMEOUT must be positive")
        if self.api.retry_attempts < 1:
            errors.append("API_RETRY_ATTEMPTS must be at least 1")
        if self.queue.default_max_retries < 1:
            errors.append("OFFLINE_QUEUE_MAX_RETRIES must be at least 1")
        if self.storage.backend not in ("memory", "redis"):
            errors.append(f"Unknown STORAGE_BACKEND '{self.storage.backend}'")

        if errors:
            for error in errors:
                logging.error(f"Configuration error: {error}")
            return False

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return {
            "environment": self.environment,
            "api": {
                "base_url": self.api.base_url,
                "timeout": self.api.timeout,
                "retry_attempts": self.api.retry_attempts,
                "retry_delay": self.api.retry_delay,
            },
            "cache": {
                "short": self.cache.short,
                "medium": self.cache.medium,
                "long": self.cache.long,
                "very_long": self.cache.very_long,
            },
            "network": {
                "poll_interval": self.network.poll_interval,
                "connectivity_check_interval": self.network.connectivity_check_interval,
                "status_endpoint": self.network.status_endpoint,
            },
            "queue": {
                "storage_key": self.queue.storage_key,
                "default_max_retries": self.queue.default_max_retries,
            },
            "storage": {
                "backend": self.storage.backend,
                "redis_host": self.storage.redis_host,
                "redis_port": self.storage.redis_port,
            },
            "logging": {
                "level": self.logging.level,
                "file": self.logging.file,
            },
        }
