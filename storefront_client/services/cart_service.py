"""Cart service for managing the local shopping cart"""

import asyncio
import copy
import json
from typing import Any, Callable, Dict, List, Optional

from ..errors import CartError, CartItemNotFoundError, StockError
from ..models.cart import Cart, CartItem, cart_item_id
from ..storage import KeyValueStore
from ..utils.logger import get_logger

logger = get_logger(__name__)

CART_STORAGE_KEY = 'shopping_cart'

CartListener = Callable[[Cart], None]


class CartService:
    """
    Single-device cart persisted as one JSON blob

    Mutations are serialized with a lock. Every line satisfies
    `0 < jumlah <= stok_tersedia` after each call: `add_item` rejects
    violations, `update_item_quantity` clamps.
    """

    def __init__(self, store: KeyValueStore, storage_key: str = CART_STORAGE_KEY):
        """
        Initialize cart service

        Args:
            store: Persistent key-value store
            storage_key: Key holding the serialized cart
        """
        self.store = store
        self.storage_key = storage_key
        self._cart: Optional[Cart] = None
        self._listeners: List[CartListener] = []
        self._lock = asyncio.Lock()

    async def load_cart(self) -> Cart:
        raw = await self.store.get_item(self.storage_key)
        if not raw:
            self._cart = Cart()
            return self._cart

        try:
            self._cart = Cart.from_dict(json.loads(raw))
            logger.info(f"[Cart] Cart loaded: {self._cart.total_items} items")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"[Cart] Stored cart is unreadable, starting empty: {e}")
            self._cart = Cart()
        return self._cart

    async def _ensure_loaded(self) -> Cart:
        if self._cart is None:
            await self.load_cart()
        return self._cart

    async def _save_cart(self) -> None:
        """Persist the cart and notify listeners"""
        self._cart.touch()
        await self.store.set_item(self.storage_key, json.dumps(self._cart.to_dict()))
        logger.debug(f"[Cart] Cart saved: {self._cart.total_items} items")
        self._notify_listeners()

    def add_listener(self, listener: CartListener) -> Callable[[], None]:
        """
        Subscribe to persisted cart changes

        Returns:
            Unsubscribe function
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        snapshot = copy.deepcopy(self._cart)
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"[Cart] Listener failed: {e}", exc_info=True)

    async def get_cart(self) -> Cart:
        """Snapshot of the current cart"""
        return copy.deepcopy(await self._ensure_loaded())

    async def add_item(
        self,
        produk_id: int,
        nama_produk: str,
        harga: float,
        jumlah: int,
        stok_tersedia: int,
        varian_id: Optional[int] = None,
        nama_varian: Optional[str] = None,
        gambar_url: Optional[str] = None,
        catatan: Optional[str] = None
    ) -> CartItem:
        """
        Add a product (or variant) to the cart, merging with an existing line

        Args:
            produk_id: Product id
            nama_produk: Product display name
            harga: Unit price
            jumlah: Quantity to add, must be positive
            stok_tersedia: Current available stock
            varian_id: Optional variant id
            nama_varian: Optional variant display name
            gambar_url: Optional image URL
            catatan: Optional note; replaces the existing note when given

        Returns:
            The resulting cart line

        Raises:
            StockError: The resulting quantity would exceed `stok_tersedia`;
                        the cart is left unchanged
        """
        if jumlah <= 0:
            raise CartError("Jumlah harus lebih dari 0")

        async with self._lock:
            cart = await self._ensure_loaded()
            item_id = cart_item_id(produk_id, varian_id)
            existing = cart.find_item(item_id)

            if existing is not None:
                new_quantity = existing.jumlah + jumlah
                if new_quantity > stok_tersedia:
                    raise StockError(stok_tersedia, new_quantity, item_id)

                existing.jumlah = new_quantity
                existing.stok_tersedia = stok_tersedia
                existing.catatan = catatan or existing.catatan
                line = existing
                logger.info(f"[Cart] Updated cart item: {existing.nama_produk} qty: {existing.jumlah}")
            else:
                if jumlah > stok_tersedia:
                    raise StockError(stok_tersedia, jumlah, item_id)

                line = CartItem(
                    produk_id=produk_id,
                    varian_id=varian_id,
                    nama_produk=nama_produk,
                    nama_varian=nama_varian,
                    harga=harga,
                    jumlah=jumlah,
                    gambar_url=gambar_url,
                    stok_tersedia=stok_tersedia,
                    catatan=catatan,
                )
                cart.items.append(line)
                logger.info(f"[Cart] Added new cart item: {nama_produk} qty: {jumlah}")

            await self._save_cart()
            logger.info(f"[Cart] After add - Total items: {cart.total_items}, Total value: {cart.total_harga}")
            return copy.deepcopy(line)

    async def update_item_quantity(self, item_id: str, jumlah: int) -> Optional[CartItem]:
        """
        Set a line's quantity

        A quantity of zero or less removes the line. Quantities above the
        available stock are clamped to it.

        Returns:
            The updated line, or None when it was removed
        """
        async with self._lock:
            cart = await self._ensure_loaded()
            item = cart.find_item(item_id)
            if item is None:
                raise CartItemNotFoundError(item_id)

            if jumlah > item.stok_tersedia:
                logger.info(f"[Cart] Quantity {jumlah} clamped to stock {item.stok_tersedia} for {item.nama_produk}")
                jumlah = item.stok_tersedia

            if jumlah <= 0:
                await self._remove_locked(item_id)
                return None

            item.jumlah = jumlah
            logger.info(f"[Cart] Updated quantity: {item.nama_produk} qty: {jumlah}")
            await self._save_cart()
            return copy.deepcopy(item)

    async def _remove_locked(self, item_id: str) -> CartItem:
        removed = self._cart.remove_item(item_id)
        if removed is None:
            raise CartItemNotFoundError(item_id)
        logger.info(f"[Cart] Removed item: {removed.nama_produk}")
        await self._save_cart()
        return removed

    async def remove_item(self, item_id: str) -> CartItem:
        """Remove a line; raises CartItemNotFoundError when absent"""
        async with self._lock:
            await self._ensure_loaded()
            return await self._remove_locked(item_id)

    async def update_item_note(self, item_id: str, catatan: Optional[str]) -> None:
        async with self._lock:
            cart = await self._ensure_loaded()
            item = cart.find_item(item_id)
            if item is None:
                raise CartItemNotFoundError(item_id)
            item.catatan = catatan
            await self._save_cart()

    async def clear_cart(self) -> None:
        async with self._lock:
            self._cart = Cart()
            await self._save_cart()
            logger.info("[Cart] Cart cleared")

    async def get_item_count(self) -> int:
        return (await self._ensure_loaded()).total_items

    async def get_cart_total(self) -> float:
        return (await self._ensure_loaded()).total_harga

    async def is_item_in_cart(self, produk_id: int, varian_id: Optional[int] = None) -> bool:
        cart = await self._ensure_loaded()
        return cart.find_item(cart_item_id(produk_id, varian_id)) is not None

    async def get_cart_item(self, produk_id: int, varian_id: Optional[int] = None) -> Optional[CartItem]:
        cart = await self._ensure_loaded()
        item = cart.find_item(cart_item_id(produk_id, varian_id))
        return copy.deepcopy(item) if item is not None else None

    async def validate_cart(self) -> Dict[str, Any]:
        """Check lines against the cached stock figures"""
        cart = await self._ensure_loaded()
        errors = [
            {
                'item_id': item.id,
                'message': f"{item.nama_produk} - Stok tidak mencukupi",
                'available_stock': item.stok_tersedia,
            }
            for item in cart.items
            if item.jumlah > item.stok_tersedia
        ]
        return {'is_valid': not errors, 'errors': errors}

    async def calculate_discounted_total(self, discount_amount: float) -> float:
        cart = await self._ensure_loaded()
        return max(0.0, cart.total_harga - discount_amount)

    async def get_grouped_items(self) -> List[Dict[str, Any]]:
        """Lines grouped by product, in first-seen order"""
        cart = await self._ensure_loaded()
        grouped: Dict[int, Dict[str, Any]] = {}

        for item in cart.items:
            group = grouped.setdefault(item.produk_id, {
                'produk_id': item.produk_id,
                'nama_produk': item.nama_produk,
                'items': [],
                'total_quantity': 0,
                'total_price': 0.0,
            })
            group['items'].append(copy.deepcopy(item))
            group['total_quantity'] += item.jumlah
            group['total_price'] += item.subtotal

        return list(grouped.values())

    async def convert_to_order_data(self) -> Dict[str, Any]:
        """Minimal order payload: product, variant and quantity per line plus totals"""
        cart = await self._ensure_loaded()
        return {
            'items': [
                {
                    'produk_id': item.produk_id,
                    'varian_id': item.varian_id,
                    'jumlah': item.jumlah,
                }
                for item in cart.items
            ],
            'total_harga': cart.total_harga,
            'total_items': cart.total_items,
        }

    async def sync_with_product_data(self, product_data: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Refresh price, stock and display fields from fresh product data

        Lines without a matching entry are left untouched. When stock drops
        below a line's quantity the quantity is clamped; a line whose stock
        drops to zero is removed.

        Args:
            product_data: Dicts with produk_id, optional varian_id, harga,
                          stok_tersedia and optional display fields

        Returns:
            Dict with `updated` flag and per-line `changes` descriptions

        Raises:
            CartError: A matching entry has a missing or non-numeric price
                       or stock; no line is modified
        """
        async with self._lock:
            cart = await self._ensure_loaded()

            # Convert everything up front so a bad entry leaves the cart untouched
            matched = []
            for item in cart.items:
                fresh = next(
                    (p for p in product_data
                     if item.matches(int(p['produk_id']), p.get('varian_id'))),
                    None
                )
                if fresh is None:
                    continue
                try:
                    matched.append((item, fresh, float(fresh['harga']), int(fresh['stok_tersedia'])))
                except (KeyError, TypeError, ValueError) as e:
                    raise CartError(f"Data produk tidak valid untuk {item.nama_produk}: {e}", item.id) from e

            changes: List[Dict[str, Any]] = []
            sold_out: List[str] = []
            updated = False

            for item, fresh, harga, stok in matched:
                item_changes: List[str] = []

                if harga != item.harga:
                    item_changes.append(f"Harga berubah dari {item.harga:g} ke {harga:g}")
                    item.harga = harga
                    updated = True

                if stok != item.stok_tersedia:
                    item_changes.append(f"Stok berubah dari {item.stok_tersedia} ke {stok}")
                    item.stok_tersedia = stok
                    updated = True

                if stok <= 0:
                    item_changes.append("Item dihapus karena stok habis")
                    sold_out.append(item.id)
                elif item.jumlah > stok:
                    item_changes.append(f"Jumlah disesuaikan dari {item.jumlah} ke {stok}")
                    item.jumlah = stok
                    updated = True

                for attr in ('nama_produk', 'nama_varian', 'gambar_url'):
                    value = fresh.get(attr)
                    if value and value != getattr(item, attr):
                        setattr(item, attr, value)
                        updated = True

                if item_changes:
                    changes.append({'item_id': item.id, 'changes': item_changes})

            for item_id in sold_out:
                cart.remove_item(item_id)
                updated = True

            if updated:
                await self._save_cart()
                logger.info(f"[Cart] Synced with product data: {len(changes)} lines changed")

            return {'updated': updated, 'changes': changes}
