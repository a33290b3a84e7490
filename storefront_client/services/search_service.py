"""Persisted product search history"""

import json
import re
import uuid
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models.search import SearchHistoryEntry
from ..storage import KeyValueStore
from ..utils.clock import Clock, now_ms
from ..utils.logger import get_logger

logger = get_logger(__name__)

SEARCH_HISTORY_KEY = 'search_history'
MAX_SEARCH_HISTORY = 50
MIN_QUERY_LENGTH = 2

DAY_MS = 24 * 60 * 60 * 1000
WEEK_MS = 7 * DAY_MS
HISTORY_RETENTION_MS = 30 * DAY_MS


class SearchService:
    """Newest-first search history, de-duplicated case-insensitively"""

    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None,
                 storage_key: str = SEARCH_HISTORY_KEY):
        self.store = store
        self.clock = clock or now_ms
        self.storage_key = storage_key
        self._history: List[SearchHistoryEntry] = []
        self._loaded = False

    async def load_search_history(self) -> None:
        raw = await self.store.get_item(self.storage_key)
        self._loaded = True
        if not raw:
            self._history = []
            return

        try:
            stored = json.loads(raw)
            self._history = [SearchHistoryEntry.from_dict(item) for item in stored]
            logger.info(f"Search history loaded: {len(self._history)} items")
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Stored search history is unreadable, starting empty: {e}")
            self._history = []

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load_search_history()

    async def _save_search_history(self) -> None:
        await self.store.set_item(self.storage_key, json.dumps([e.to_dict() for e in self._history]))
        logger.debug(f"Search history saved: {len(self._history)} items")

    async def add_search_query(self, query: str, results_count: int = 0) -> Optional[SearchHistoryEntry]:
        """
        Record a search at the head of the history

        Args:
            query: Raw query text; shorter than two characters is ignored
            results_count: Number of results the search returned

        Returns:
            The new entry, or None when the query was ignored
        """
        if not query or len(query.strip()) < MIN_QUERY_LENGTH:
            return None

        await self._ensure_loaded()
        trimmed = query.strip()
        normalized = trimmed.lower()

        self._history = [e for e in self._history if e.query.lower() != normalized]

        entry = SearchHistoryEntry(
            id=uuid.uuid4().hex,
            query=trimmed,
            timestamp=self.clock(),
            results_count=results_count,
        )
        self._history.insert(0, entry)
        self._history = self._history[:MAX_SEARCH_HISTORY]

        await self._save_search_history()
        logger.debug(f"Added search query: {trimmed!r} with {results_count} results")
        return entry

    async def get_search_history(self, limit: Optional[int] = None) -> List[SearchHistoryEntry]:
        await self._ensure_loaded()
        history = list(self._history)
        return history[:limit] if limit else history

    async def get_popular_searches(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Queries ranked by frequency, then recency"""
        history = await self.get_search_history()
        aggregated: Dict[str, Dict[str, int]] = {}

        for entry in history:
            stats = aggregated.setdefault(entry.query.lower(), {'count': 0, 'last_searched': 0, 'total_results': 0})
            stats['count'] += 1
            stats['last_searched'] = max(stats['last_searched'], entry.timestamp)
            stats['total_results'] += entry.results_count

        ranked = [
            {
                'query': query,
                'count': stats['count'],
                'last_searched': stats['last_searched'],
                'avg_results': round(stats['total_results'] / stats['count']),
            }
            for query, stats in aggregated.items()
        ]
        ranked.sort(key=lambda row: (-row['count'], -row['last_searched']))
        return ranked[:limit]

    async def get_recent_searches(self, limit: int = 10) -> List[SearchHistoryEntry]:
        history = await self.get_search_history()
        return sorted(history, key=lambda e: e.timestamp, reverse=True)[:limit]

    async def search_in_history(self, query: str, limit: int = 5) -> List[SearchHistoryEntry]:
        history = await self.get_search_history()
        needle = query.lower()
        return [e for e in history if needle in e.query.lower()][:limit]

    async def get_search_suggestions(self, query: str, limit: int = 5) -> List[str]:
        """Prefix matches first, then substring matches; recent searches for an empty query"""
        if not query:
            return [e.query for e in await self.get_recent_searches(limit)]

        history = await self.get_search_history()
        needle = query.lower()
        suggestions: "OrderedDict[str, None]" = OrderedDict()

        for entry in history:
            if entry.query.lower().startswith(needle):
                suggestions[entry.query] = None

        if len(suggestions) < limit:
            for entry in history:
                lowered = entry.query.lower()
                if needle in lowered and not lowered.startswith(needle):
                    suggestions[entry.query] = None

        return list(suggestions)[:limit]

    async def remove_search_history(self, entry_id: str) -> bool:
        await self._ensure_loaded()
        remaining = [e for e in self._history if e.id != entry_id]
        if len(remaining) == len(self._history):
            return False
        self._history = remaining
        await self._save_search_history()
        return True

    async def clear_search_history(self) -> None:
        self._history = []
        self._loaded = True
        await self._save_search_history()
        logger.info("Cleared all search history")

    async def get_search_stats(self) -> Dict[str, Any]:
        history = await self.get_search_history()
        now = self.clock()

        counts: Dict[str, int] = {}
        for entry in history:
            normalized = entry.query.lower()
            counts[normalized] = counts.get(normalized, 0) + 1

        most_searched = None
        max_count = 0
        for query, count in counts.items():
            if count > max_count:
                max_count = count
                most_searched = query

        total_results = sum(e.results_count for e in history)
        avg_results = total_results / len(history) if history else 0

        return {
            'total_searches': len(history),
            'unique_queries': len(counts),
            'avg_results_per_search': round(avg_results, 1),
            'most_searched_query': most_searched,
            'searches_this_week': sum(1 for e in history if now - e.timestamp < WEEK_MS),
            'searches_today': sum(1 for e in history if now - e.timestamp < DAY_MS),
        }

    async def clean_old_history(self) -> int:
        """Drop entries older than 30 days; returns the number removed"""
        await self._ensure_loaded()
        cutoff = self.clock() - HISTORY_RETENTION_MS
        before = len(self._history)
        self._history = [e for e in self._history if e.timestamp > cutoff]

        removed = before - len(self._history)
        if removed:
            await self._save_search_history()
            logger.info(f"Cleaned {removed} old search history items")
        return removed

    async def export_search_history(self) -> str:
        history = await self.get_search_history()
        export_data = {
            'export_date': datetime.now(timezone.utc).isoformat(),
            'statistics': await self.get_search_stats(),
            'history': [e.to_dict() for e in history],
        }
        return json.dumps(export_data, indent=2)

    async def import_search_history(self, data: str) -> bool:
        """
        Merge exported history into the current one

        Entries without id, query or timestamp and ids already present are
        skipped. The result is re-sorted newest first and capped.

        Returns:
            False when the payload is not an export document
        """
        try:
            payload = json.loads(data)
        except ValueError as e:
            logger.error(f"Failed to import search history: {e}")
            return False

        items = payload.get('history') if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return False

        await self._ensure_loaded()
        existing_ids = {e.id for e in self._history}
        new_entries = []
        for item in items:
            if not isinstance(item, dict) or not (item.get('id') and item.get('query') and item.get('timestamp')):
                continue
            if str(item['id']) in existing_ids:
                continue
            try:
                new_entries.append(SearchHistoryEntry.from_dict(item))
            except (TypeError, ValueError):
                continue

        merged = sorted(self._history + new_entries, key=lambda e: e.timestamp, reverse=True)
        self._history = merged[:MAX_SEARCH_HISTORY]
        await self._save_search_history()

        logger.info(f"Imported {len(new_entries)} new search history items")
        return True


def normalize_query(query: str) -> str:
    """Lowercase, trim and collapse internal whitespace"""
    return re.sub(r'\s+', ' ', query.strip().lower())


def format_results_count(count: int) -> str:
    if count == 0:
        return 'Tidak ada hasil'
    if count == 1:
        return '1 hasil'
    if count < 1000:
        return f'{count} hasil'
    if count < 1000000:
        return f'{round(count / 1000, 1):g}K hasil'
    return f'{round(count / 1000000, 1):g}M hasil'


def calculate_relevance(item: Dict[str, Any], query: str) -> int:
    """Heuristic ranking score of a product for a query"""
    needle = normalize_query(query)
    title = normalize_query(item.get('nama_produk') or '')
    description = normalize_query(item.get('deskripsi') or '')

    score = 0
    if title == needle:
        score += 100
    if title.startswith(needle):
        score += 80
    if needle in title:
        score += 60
    if needle in description:
        score += 40

    # Popularity boosts
    if (item.get('rating') or 0) > 4:
        score += 10
    if (item.get('sales_count') or 0) > 100:
        score += 5
    return score
