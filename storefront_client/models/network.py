"""Connectivity state model"""

from dataclasses import dataclass, asdict
from typing import Any, Dict


@dataclass(frozen=True)
class NetworkState:
    """Snapshot of backend reachability"""
    is_connected: bool
    is_internet_reachable: bool
    type: str

    @classmethod
    def from_reachability(cls, reachable: bool) -> 'NetworkState':
        # Reachability of the API is the only signal available
        return cls(
            is_connected=reachable,
            is_internet_reachable=reachable,
            type='wifi' if reachable else 'none',
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
