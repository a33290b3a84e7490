"""End-to-end tests of the API facade wired through the composition root."""

import json

import httpx
import pytest
import respx

from storefront_client.app import build_storefront
from storefront_client.config import APIConfig, Config, NetworkConfig
from storefront_client.errors import NetworkError, RequestQueuedError
from storefront_client.services.api_service import PROFILE_KEY, orders_key
from storefront_client.services.cache_manager import product_key

from .conftest import BASE_URL

CUSTOMER = {"id": 12, "nama": "Budi", "email": "budi@example.com"}


def make_storefront(store, clock, sleeper, retry_attempts: int = 3):
    config = Config(environment="development")
    config.api = APIConfig(base_url=BASE_URL, timeout=5.0, retry_attempts=retry_attempts, retry_delay=1.0)
    config.network = NetworkConfig(poll_interval=3600.0, connectivity_check_interval=30000)
    return build_storefront(config=config, store=store, clock=clock, sleep=sleeper)


@pytest.fixture
def storefront(store, clock, sleeper):
    return make_storefront(store, clock, sleeper)


def mock_login(router) -> None:
    router.post(f"{BASE_URL}/customer/login").respond(
        200, json={"success": True, "data": {"token": "tok-123", "customer": CUSTOMER}}
    )


@pytest.mark.asyncio
async def test_login_profile_cache_logout(storefront, store) -> None:
    api = storefront.api

    with respx.mock(assert_all_called=True) as router:
        mock_login(router)
        profile_route = router.get(f"{BASE_URL}/customer/profile").respond(
            200, json={"success": True, "data": CUSTOMER}
        )
        logout_route = router.post(f"{BASE_URL}/customer/logout").respond(200, json={"success": True})

        data = await api.login({"email": "budi@example.com", "password": "rahasia"})
        assert data["token"] == "tok-123"
        assert await storefront.session.get_token() == "tok-123"
        assert await storefront.session.get_user() == CUSTOMER

        assert await api.get_customer_profile() == CUSTOMER
        assert await api.get_customer_profile() == CUSTOMER
        assert profile_route.call_count == 1
        assert profile_route.calls[0].request.headers["Authorization"] == "Bearer tok-123"
        assert await store.get_item(f"cache_{PROFILE_KEY}") is not None

        await api.logout()

    assert logout_route.call_count == 1
    assert await storefront.session.get_token() is None
    assert await store.get_item(f"cache_{PROFILE_KEY}") is None


@pytest.mark.asyncio
async def test_logout_survives_remote_failure(storefront) -> None:
    await storefront.session.save_login("tok", CUSTOMER)
    await storefront.queue.add_to_queue("/customer/orders", "POST", {"items": []})

    with respx.mock(assert_all_called=True) as router:
        route = router.post(f"{BASE_URL}/customer/logout").respond(500)
        await storefront.api.logout()

    assert route.call_count == 1
    assert await storefront.session.get_token() is None
    assert len(storefront.queue) == 0


@pytest.mark.asyncio
async def test_offline_order_replayed_on_reconnect(store, clock, sleeper) -> None:
    storefront = make_storefront(store, clock, sleeper, retry_attempts=2)
    api = storefront.api
    await storefront.queue.start()

    with respx.mock(assert_all_called=True) as router:
        mock_login(router)
        router.get(f"{BASE_URL}/customer/orders").respond(
            200, json={"success": True, "data": [{"id": 1}], "meta": {"total": 1}}
        )
        status_route = router.get(f"{BASE_URL}/status")
        status_route.side_effect = [
            httpx.Response(503),
            httpx.Response(200, json={"success": True, "data": {"status": "ok"}}),
        ]
        order_route = router.post(f"{BASE_URL}/customer/orders")
        order_route.side_effect = [
            httpx.ConnectError("offline"),
            httpx.ConnectError("offline"),
            httpx.Response(201, json={"success": True, "data": {"id": 2}}),
        ]

        await api.login({"email": "budi@example.com", "password": "rahasia"})
        await api.get_customer_orders()
        assert await store.get_item(f"cache_{orders_key()}") is not None

        with pytest.raises(RequestQueuedError) as exc_info:
            await api.create_order({"items": [{"produk_id": 1, "jumlah": 1}]})
        assert len(storefront.queue) == 1
        assert storefront.queue.get_queue_items()[0]["id"] == exc_info.value.queue_id

        assert await storefront.network.check_connectivity() is False
        assert await storefront.network.check_connectivity() is True
        await storefront.queue.wait_for_replay()

    assert order_route.call_count == 3
    assert len(storefront.queue) == 0
    assert await store.get_item(f"cache_{orders_key()}") is None


@pytest.mark.asyncio
async def test_successful_write_invalidates_profile(storefront, store) -> None:
    await storefront.session.save_login("tok", CUSTOMER)

    with respx.mock(assert_all_called=True) as router:
        profile_route = router.get(f"{BASE_URL}/customer/profile").respond(
            200, json={"success": True, "data": CUSTOMER}
        )
        router.put(f"{BASE_URL}/customer/profile").respond(
            200, json={"success": True, "data": {**CUSTOMER, "nama": "Budi S"}}
        )

        await storefront.api.get_customer_profile()
        updated = await storefront.api.update_customer_profile({"nama": "Budi S"})
        await storefront.api.get_customer_profile()

    assert updated["nama"] == "Budi S"
    assert profile_route.call_count == 2


@pytest.mark.asyncio
async def test_promo_validation_never_queued(storefront) -> None:
    await storefront.session.save_login("tok", CUSTOMER)

    with respx.mock(assert_all_called=True) as router:
        router.post(f"{BASE_URL}/customer/promotions/validate").mock(side_effect=httpx.ConnectError)

        with pytest.raises(NetworkError) as exc_info:
            await storefront.api.validate_promo_code("HEMAT10", 250000)

    assert not isinstance(exc_info.value, RequestQueuedError)
    assert len(storefront.queue) == 0


@pytest.mark.asyncio
async def test_product_listing_cached_but_search_recorded(storefront) -> None:
    api = storefront.api

    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{BASE_URL}/public/products").respond(
            200, json={"success": True, "data": [{"id": 1}], "meta": {"total": 12}}
        )

        first = await api.search_products({"page": 1, "kategori_id": None})
        second = await api.search_products({"page": 1})
        assert first == second == {"data": [{"id": 1}], "meta": {"total": 12}}
        assert route.call_count == 1

        await api.search_products({"search": "kursi"})
        await api.search_products({"search": "kursi"})
        assert route.call_count == 3
        assert route.calls[1].request.url.params["search"] == "kursi"

    history = await storefront.search.get_search_history()
    assert [(e.query, e.results_count) for e in history] == [("kursi", 12)]


@pytest.mark.asyncio
async def test_sync_cart_with_latest_data(storefront, store) -> None:
    cart = storefront.cart
    await cart.add_item(1, "Kursi", 150000, 2, 10)
    await cart.add_item(1, "Kursi", 180000, 2, 5, varian_id=7, nama_varian="Mahoni")
    await cart.add_item(2, "Meja", 50000, 1, 3)

    product = {
        "id": 1,
        "nama_produk": "Kursi Makan",
        "harga_jual_min": 120000,
        "total_stok": 8,
        "varian": [{"id": 7, "nama_varian": "Jati", "harga_jual": 200000, "stok": 1}],
        "gambar": [
            {"url": "http://img/a.jpg", "gambar_utama": False},
            {"url": "http://img/b.jpg", "gambar_utama": True},
        ],
    }

    with respx.mock(assert_all_called=True) as router:
        product_route = router.get(f"{BASE_URL}/public/products/1").respond(
            200, json={"success": True, "data": product}
        )
        router.get(f"{BASE_URL}/public/products/2").respond(404, json={"message": "Produk tidak ditemukan"})

        result = await storefront.api.sync_cart_with_latest_data()

    assert product_route.call_count == 1
    assert result["updated"] is True

    snapshot = await cart.get_cart()
    lines = {item.id: item for item in snapshot.items}
    assert (lines["1"].harga, lines["1"].stok_tersedia, lines["1"].jumlah) == (120000, 8, 2)
    assert lines["1"].gambar_url == "http://img/b.jpg"
    assert lines["1"].nama_produk == "Kursi Makan"
    assert (lines["1_7"].harga, lines["1_7"].jumlah, lines["1_7"].nama_varian) == (200000, 1, "Jati")
    assert (lines["2"].harga, lines["2"].jumlah) == (50000, 1)
    assert await storefront.cache.get(product_key(1)) == product


@pytest.mark.asyncio
async def test_sync_variant_without_price_falls_back_to_product(storefront, store) -> None:
    cart = storefront.cart
    await cart.add_item(1, "Kursi", 150000, 2, 10)
    await cart.add_item(2, "Meja", 50000, 1, 3, varian_id=7)

    with respx.mock(assert_all_called=True) as router:
        router.get(f"{BASE_URL}/public/products/1").respond(
            200, json={"success": True, "data": {"id": 1, "harga_jual_min": 140000, "total_stok": 10}}
        )
        router.get(f"{BASE_URL}/public/products/2").respond(200, json={"success": True, "data": {
            "id": 2,
            "harga_jual_min": 55000,
            "total_stok": 4,
            "varian": [{"id": 7, "nama_varian": "Hitam", "harga_jual": None, "stok": None}],
        }})

        result = await storefront.api.sync_cart_with_latest_data()

    assert result["updated"] is True
    snapshot = await cart.get_cart()
    lines = {item.id: item for item in snapshot.items}
    assert lines["1"].harga == 140000
    assert (lines["2_7"].harga, lines["2_7"].stok_tersedia, lines["2_7"].nama_varian) == (55000, 4, "Hitam")
    assert json.loads(await store.get_item("shopping_cart")) == snapshot.to_dict()


@pytest.mark.asyncio
async def test_sync_empty_cart_makes_no_requests(storefront) -> None:
    assert await storefront.api.sync_cart_with_latest_data() == {"updated": False, "changes": []}


@pytest.mark.asyncio
async def test_prefetch_common_data_public_only(storefront) -> None:
    with respx.mock(assert_all_called=True) as router:
        router.get(f"{BASE_URL}/public/banners").respond(200, json={"success": True, "data": ["b"]})
        router.get(f"{BASE_URL}/public/product-categories").respond(200, json={"success": True, "data": ["c"]})

        await storefront.api.prefetch_common_data()
        assert await storefront.api.get_banners() == ["b"]
        assert await storefront.api.get_product_categories() == ["c"]

    info = await storefront.api.get_cache_info()
    assert info["total_items"] == 2
    assert await storefront.api.clear_all_cache() == 2


@pytest.mark.asyncio
async def test_register_stores_session(storefront) -> None:
    with respx.mock(assert_all_called=True) as router:
        router.post(f"{BASE_URL}/customer/register").respond(
            201, json={"success": True, "data": {"token": "new-tok", "customer": CUSTOMER}}
        )
        await storefront.api.register({"nama": "Budi", "email": "budi@example.com", "password": "x"})

    assert await storefront.session.is_authenticated()


@pytest.mark.asyncio
async def test_storefront_start_and_close(storefront) -> None:
    await storefront.cache.set("stale", 1, duration=1)
    storefront.cache.clock.advance(2)

    with respx.mock(assert_all_called=True) as router:
        router.get(f"{BASE_URL}/status").respond(200, json={"success": True})

        await storefront.start()
        try:
            assert storefront.network.is_online()
            assert storefront.network.listener_count == 1
            assert not await storefront.cache.has("stale")
        finally:
            await storefront.close()

    assert storefront.network.listener_count == 0


@pytest.mark.asyncio
async def test_connection_check(storefront) -> None:
    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{BASE_URL}/status")
        route.side_effect = [
            httpx.Response(200, json={"success": True, "data": {"version": "1"}}),
            httpx.Response(500),
            httpx.Response(500),
            httpx.Response(500),
        ]

        assert await storefront.api.test_connection() is True
        assert await storefront.api.test_connection() is False


@pytest.mark.asyncio
async def test_connectivity_uses_configured_status_endpoint(store, clock, sleeper) -> None:
    config = Config(environment="development")
    config.api = APIConfig(base_url=BASE_URL, timeout=5.0, retry_attempts=3, retry_delay=1.0)
    config.network = NetworkConfig(poll_interval=3600.0, status_endpoint="/health")
    storefront = build_storefront(config=config, store=store, clock=clock, sleep=sleeper)

    with respx.mock(assert_all_called=True) as router:
        route = router.get(f"{BASE_URL}/health").respond(200, json={"success": True})

        assert await storefront.network.check_connectivity() is True

    assert route.call_count == 1
