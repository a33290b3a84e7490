"""Data models for the local shopping cart"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any


def cart_item_id(produk_id: int, varian_id: Optional[int] = None) -> str:
    """Identity of a cart line: product plus optional variant"""
    return f"{produk_id}_{varian_id}" if varian_id else f"{produk_id}"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class CartItem:
    """One cart line, keyed by (produk_id, varian_id)"""
    produk_id: int
    nama_produk: str
    harga: float
    jumlah: int
    stok_tersedia: int
    varian_id: Optional[int] = None
    nama_varian: Optional[str] = None
    gambar_url: Optional[str] = None
    catatan: Optional[str] = None

    @property
    def id(self) -> str:
        return cart_item_id(self.produk_id, self.varian_id)

    @property
    def subtotal(self) -> float:
        """Calculate subtotal for this line"""
        return self.harga * self.jumlah

    def matches(self, produk_id: int, varian_id: Optional[int]) -> bool:
        """Same product and variant; a missing variant matches only a missing variant"""
        return self.produk_id == produk_id and (self.varian_id or None) == (varian_id or None)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'id': self.id,
            'produk_id': self.produk_id,
            'varian_id': self.varian_id,
            'nama_produk': self.nama_produk,
            'nama_varian': self.nama_varian,
            'harga': self.harga,
            'jumlah': self.jumlah,
            'gambar_url': self.gambar_url,
            'stok_tersedia': self.stok_tersedia,
            'catatan': self.catatan,
            'subtotal': self.subtotal,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CartItem':
        """Create CartItem from dictionary; derived fields are recomputed"""
        return cls(
            produk_id=int(data['produk_id']),
            varian_id=int(data['varian_id']) if data.get('varian_id') else None,
            nama_produk=data.get('nama_produk', ''),
            nama_varian=data.get('nama_varian'),
            harga=float(data['harga']),
            jumlah=int(data['jumlah']),
            gambar_url=data.get('gambar_url'),
            stok_tersedia=int(data.get('stok_tersedia', 0)),
            catatan=data.get('catatan'),
        )


@dataclass
class Cart:
    """Shopping cart; totals are always derived from the lines"""
    items: List[CartItem] = field(default_factory=list)
    updated_at: str = field(default_factory=_utc_now_iso)

    @property
    def total_items(self) -> int:
        """Total quantity across all lines"""
        return sum(item.jumlah for item in self.items)

    @property
    def total_harga(self) -> float:
        """Total value of cart"""
        return sum(item.subtotal for item in self.items)

    def touch(self) -> None:
        self.updated_at = _utc_now_iso()

    def find_item(self, item_id: str) -> Optional[CartItem]:
        """Find line by identity"""
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def remove_item(self, item_id: str) -> Optional[CartItem]:
        """Remove and return a line, or None if absent"""
        for i, item in enumerate(self.items):
            if item.id == item_id:
                return self.items.pop(i)
        return None

    def is_empty(self) -> bool:
        return len(self.items) == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'items': [item.to_dict() for item in self.items],
            'total_items': self.total_items,
            'total_harga': self.total_harga,
            'updated_at': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Cart':
        """Create Cart from dictionary; persisted totals are ignored"""
        items = [CartItem.from_dict(item) for item in data.get('items', [])]
        return cls(items=items, updated_at=data.get('updated_at') or _utc_now_iso())
