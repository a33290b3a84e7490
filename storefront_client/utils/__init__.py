"""Utility modules for the storefront client"""

from .clock import Clock, now_ms
from .formatters import (
    build_product_image_url,
    format_order_status,
    format_price,
    handle_api_error,
)
from .logger import get_logger, setup_logging

__all__ = [
    'Clock',
    'now_ms',
    'build_product_image_url',
    'format_order_status',
    'format_price',
    'handle_api_error',
    'get_logger',
    'setup_logging'
]
