"""Tests for the display helpers."""

import pytest

from storefront_client.errors import NetworkError, StockError
from storefront_client.utils.formatters import (
    build_product_image_url,
    format_order_status,
    format_price,
    handle_api_error,
)


@pytest.mark.parametrize(
    "price,expected",
    [
        (150000, "Rp 150.000"),
        ("2500000", "Rp 2.500.000"),
        (999.6, "Rp 1.000"),
        (0, "Rp 0"),
        (None, "Rp 0"),
        (-5000, "-Rp 5.000"),
        ("abc", "Harga tidak tersedia"),
        (float("nan"), "Harga tidak tersedia"),
    ],
)
def test_format_price(price, expected) -> None:
    assert format_price(price) == expected


def test_format_order_status() -> None:
    assert format_order_status("shipped") == {"text": "Dikirim", "color": "#FF6347"}
    assert format_order_status("refunded") == {"text": "refunded", "color": "#666666"}


def test_build_product_image_url() -> None:
    base = "https://gudangperabot.com/"
    assert build_product_image_url("produk/kursi.jpg", base) == "https://gudangperabot.com/storage/produk/kursi.jpg"
    assert build_product_image_url("/produk/a.jpg", base) == "https://gudangperabot.com/storage/produk/a.jpg"
    assert build_product_image_url("https://cdn.test/a.jpg", base) == "https://cdn.test/a.jpg"
    assert build_product_image_url(None, base) is None


def test_handle_api_error() -> None:
    assert handle_api_error(NetworkError()) == "Network error. Please check your connection."
    assert handle_api_error(StockError(1, 2)) == "Stok tidak mencukupi. Tersedia: 1, diminta: 2"
    assert handle_api_error(Exception()) == "Terjadi kesalahan tidak terduga"
