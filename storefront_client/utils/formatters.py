"""Display helpers for prices, order statuses, image URLs and errors"""

from typing import Any, Dict, Optional, Union

from ..errors import ApiError

PRICE_UNAVAILABLE = "Harga tidak tersedia"

ORDER_STATUS_MAP: Dict[str, Dict[str, str]] = {
    "pending": {"text": "Menunggu", "color": "#FFA500"},
    "confirmed": {"text": "Dikonfirmasi", "color": "#32CD32"},
    "processing": {"text": "Diproses", "color": "#1E90FF"},
    "shipped": {"text": "Dikirim", "color": "#FF6347"},
    "delivered": {"text": "Selesai", "color": "#228B22"},
    "cancelled": {"text": "Dibatalkan", "color": "#DC143C"},
}


def format_price(price: Union[int, float, str, None]) -> str:
    """
    Format an amount as Indonesian Rupiah, e.g. ``Rp 150.000``

    Args:
        price: Amount; strings are parsed, empty values format as zero

    Returns:
        Formatted price or a fallback text when the value is not numeric
    """
    try:
        amount = float(price) if price else 0.0
    except (TypeError, ValueError):
        return PRICE_UNAVAILABLE

    if amount != amount:  # NaN
        return PRICE_UNAVAILABLE

    rounded = int(round(abs(amount)))
    grouped = f"{rounded:,}".replace(",", ".")
    sign = "-" if amount < 0 and rounded else ""
    return f"{sign}Rp {grouped}"


def format_order_status(status: str) -> Dict[str, str]:
    """Localized label and badge color for an order status"""
    return dict(ORDER_STATUS_MAP.get(status, {"text": status, "color": "#666666"}))


def build_product_image_url(image_path: Optional[str], base_url: str) -> Optional[str]:
    """
    Resolve a product image path against the storage root

    Args:
        image_path: Absolute URL or path relative to the backend storage
        base_url: Backend base URL
    """
    if not image_path:
        return None
    if image_path.startswith("http"):
        return image_path
    return f"{base_url.rstrip('/')}/storage/{image_path.lstrip('/')}"


def handle_api_error(error: Any) -> str:
    """User-facing message for any exception raised by the data layer"""
    if isinstance(error, ApiError):
        return error.user_message()
    message = getattr(error, "message", None) or str(error)
    return message or "Terjadi kesalahan tidak terduga"
