"""Offline queue item model"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import uuid

QUEUEABLE_METHODS = ("GET", "POST", "PUT", "DELETE")


@dataclass
class QueueItem:
    """A deferred request awaiting replay"""
    endpoint: str
    method: str
    timestamp: int
    data: Optional[Any] = None
    retry_count: int = 0
    max_retries: int = 3
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self):
        self.method = self.method.upper()
        if self.method not in QUEUEABLE_METHODS:
            raise ValueError(f"Unsupported method: {self.method}")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")

    @property
    def exhausted(self) -> bool:
        """True once the item has used up its replay attempts"""
        return self.retry_count >= self.max_retries

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            'id': self.id,
            'endpoint': self.endpoint,
            'method': self.method,
            'data': self.data,
            'timestamp': self.timestamp,
            'retryCount': self.retry_count,
            'maxRetries': self.max_retries,
        }

    def summary(self) -> Dict[str, Any]:
        """Introspection view without the payload"""
        view = self.to_dict()
        view.pop('data')
        return view

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QueueItem':
        """Create QueueItem from dictionary"""
        return cls(
            id=data['id'],
            endpoint=data['endpoint'],
            method=data['method'],
            data=data.get('data'),
            timestamp=int(data.get('timestamp', 0)),
            retry_count=int(data.get('retryCount', 0)),
            max_retries=int(data.get('maxRetries', 3)),
        )
