"""Search history model"""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class SearchHistoryEntry:
    id: str
    query: str
    timestamp: int
    results_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'query': self.query,
            'timestamp': self.timestamp,
            'results_count': self.results_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SearchHistoryEntry':
        return cls(
            id=str(data['id']),
            query=data['query'],
            timestamp=int(data['timestamp']),
            results_count=int(data.get('results_count', 0)),
        )
