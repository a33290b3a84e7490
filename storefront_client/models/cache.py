"""Cache entry model"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from ..errors import CacheCorruptionError


@dataclass
class CacheEntry:
    """A cached value with its write time and absolute expiry (epoch ms)"""
    data: Any
    timestamp: int
    expiry: int

    @classmethod
    def create(cls, data: Any, now: int, duration: int) -> 'CacheEntry':
        if duration <= 0:
            raise ValueError("Cache duration must be positive")
        return cls(data=data, timestamp=now, expiry=now + duration)

    def is_expired(self, now: int) -> bool:
        return now > self.expiry

    def remaining_ms(self, now: int) -> int:
        return max(0, self.expiry - now)

    def to_dict(self) -> Dict[str, Any]:
        return {'data': self.data, 'timestamp': self.timestamp, 'expiry': self.expiry}

    def serialize(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def deserialize(cls, key: str, raw: str) -> 'CacheEntry':
        """Decode a persisted entry, raising CacheCorruptionError on any malformation"""
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise CacheCorruptionError(key, f"invalid JSON: {e}") from e

        if not isinstance(payload, dict) or 'data' not in payload or 'expiry' not in payload:
            raise CacheCorruptionError(key, "missing data/expiry fields")

        try:
            expiry = int(payload['expiry'])
            timestamp = int(payload.get('timestamp', expiry))
        except (TypeError, ValueError) as e:
            raise CacheCorruptionError(key, f"bad expiry: {e}") from e

        return cls(data=payload['data'], timestamp=timestamp, expiry=expiry)
