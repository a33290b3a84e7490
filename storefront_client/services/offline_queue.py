"""
Offline write queue

Mutating requests that fail for network reasons are persisted as one JSON
array under a single storage key and replayed, in enqueue order, when the
network service reports connectivity restored. Each item gets a bounded
number of replay attempts; exhausted items are dropped and reported through
the `on_drop` hook.
"""

import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..config import QueueConfig
from ..errors import ApiError, NetworkError, RequestQueuedError
from ..http_client import HttpClient
from ..models.network import NetworkState
from ..models.queue import QueueItem
from ..storage import KeyValueStore
from ..utils.clock import Clock, now_ms
from ..utils.logger import get_logger
from .network_service import NetworkService, should_queue_request

logger = get_logger(__name__)

DropHook = Callable[[QueueItem, ApiError], Awaitable[None]]
ReplayHook = Callable[[QueueItem, Dict[str, Any]], Awaitable[None]]


class OfflineQueueService:
    """Durable queue of deferred writes with bounded replay"""

    def __init__(
        self,
        store: KeyValueStore,
        http_client: HttpClient,
        network: NetworkService,
        queue_config: Optional[QueueConfig] = None,
        clock: Optional[Clock] = None,
        on_drop: Optional[DropHook] = None,
        on_replayed: Optional[ReplayHook] = None
    ):
        """
        Initialize the queue

        Args:
            store: Persistent key-value store
            http_client: Client used to replay items (always with auth)
            network: Connectivity source; replay starts when it reports online
            queue_config: Storage key and default retry budget
            clock: Epoch-millisecond clock, injectable for tests
            on_drop: Awaited for every item dropped after exhausting retries
            on_replayed: Awaited for every item replayed successfully
        """
        config = queue_config or QueueConfig()
        self.store = store
        self.http_client = http_client
        self.network = network
        self.storage_key = config.storage_key
        self.default_max_retries = config.default_max_retries
        self.clock = clock or now_ms
        self.on_drop = on_drop
        self.on_replayed = on_replayed

        self._queue: List[QueueItem] = []
        self._lock = asyncio.Lock()
        self._replay_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def start(self) -> None:
        """Load the persisted queue and subscribe to connectivity changes"""
        await self.load_queue()
        if self._unsubscribe is None:
            self._unsubscribe = self.network.add_listener(self._on_network_change)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_network_change(self, state: NetworkState) -> None:
        if state.is_connected and self._queue:
            self._schedule_replay()

    def _schedule_replay(self) -> None:
        if self._replay_task is not None and not self._replay_task.done():
            return
        self._replay_task = asyncio.create_task(self.process_queue())
        self._replay_task.add_done_callback(self._log_replay_failure)

    @staticmethod
    def _log_replay_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[Queue] Background replay failed: {error!r}", exc_info=error)

    async def wait_for_replay(self) -> None:
        """Await the replay triggered by the last connectivity change, if any"""
        if self._replay_task is not None:
            await self._replay_task

    async def load_queue(self) -> None:
        raw = await self.store.get_item(self.storage_key)
        if not raw:
            self._queue = []
            return

        try:
            stored = json.loads(raw)
        except ValueError as e:
            logger.warning(f"[Queue] Stored queue is not valid JSON, starting empty: {e}")
            self._queue = []
            return

        items = []
        for entry in stored if isinstance(stored, list) else []:
            try:
                items.append(QueueItem.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[Queue] Skipping malformed queue item: {e}")
        self._queue = items
        logger.info(f"[Queue] Offline queue loaded: {len(self._queue)} items")

    async def _save_queue(self) -> None:
        await self.store.set_item(self.storage_key, json.dumps([item.to_dict() for item in self._queue]))
        logger.debug(f"[Queue] Offline queue saved: {len(self._queue)} items")

    async def add_to_queue(self, endpoint: str, method: str, data: Optional[Any] = None,
                           max_retries: Optional[int] = None) -> str:
        """
        Append a request to the queue and persist it

        Returns:
            Generated queue item id
        """
        item = QueueItem(
            endpoint=endpoint,
            method=method,
            data=data,
            timestamp=self.clock(),
            max_retries=self.default_max_retries if max_retries is None else max_retries,
        )
        self._queue.append(item)
        await self._save_queue()
        logger.info(f"[Queue] Added to offline queue: {item.method} {endpoint} ({item.id})")
        return item.id

    async def process_queue(self) -> Dict[str, int]:
        """
        Replay every queued item once, in enqueue order

        Returns:
            Counts of replayed, dropped and remaining items
        """
        async with self._lock:
            if not self._queue or self.network.is_offline():
                return {'replayed': 0, 'dropped': 0, 'remaining': len(self._queue)}

            logger.info(f"[Queue] Processing offline queue: {len(self._queue)} items")

            replayed = []
            dropped = []
            for item in list(self._queue):
                try:
                    response = await self.http_client.request(
                        item.method, item.endpoint, data=item.data, require_auth=True
                    )
                except ApiError as error:
                    item.retry_count += 1
                    if item.exhausted:
                        logger.warning(
                            f"[Queue] Item failed permanently, dropping: {item.method} {item.endpoint} "
                            f"({item.retry_count}/{item.max_retries}): {error!r}"
                        )
                        dropped.append((item, error))
                    else:
                        logger.info(
                            f"[Queue] Item failed, will retry: {item.method} {item.endpoint} "
                            f"({item.retry_count}/{item.max_retries})"
                        )
                    continue

                logger.info(f"[Queue] Item processed: {item.method} {item.endpoint}")
                replayed.append((item, response))

            finished = {item.id for item, _ in replayed} | {item.id for item, _ in dropped}
            self._queue = [item for item in self._queue if item.id not in finished]
            await self._save_queue()

            logger.info(
                f"[Queue] Processing complete: {len(replayed)} successful, "
                f"{len(dropped)} failed permanently, {len(self._queue)} remaining"
            )

        for item, response in replayed:
            if self.on_replayed is not None:
                await self.on_replayed(item, response)
        for item, error in dropped:
            if self.on_drop is not None:
                await self.on_drop(item, error)

        return {'replayed': len(replayed), 'dropped': len(dropped), 'remaining': len(self._queue)}

    async def request_or_queue(self, method: str, endpoint: str,
                               data: Optional[Any] = None) -> Dict[str, Any]:
        """
        Execute an authenticated request, diverting eligible network failures into the queue

        Raises:
            RequestQueuedError: The request failed on the network and was queued
            ApiError: Any other failure, or a network failure of a non-queueable request
        """
        try:
            return await self.http_client.request(method, endpoint, data=data, require_auth=True)
        except NetworkError as error:
            if not should_queue_request(method, endpoint):
                raise
            queue_id = await self.add_to_queue(endpoint, method, data)
            raise RequestQueuedError(queue_id, error) from error

    def get_queue_status(self) -> Dict[str, Optional[int]]:
        if not self._queue:
            return {'count': 0, 'oldest_item': None, 'newest_item': None}

        timestamps = [item.timestamp for item in self._queue]
        return {
            'count': len(self._queue),
            'oldest_item': min(timestamps),
            'newest_item': max(timestamps),
        }

    def get_queue_items(self) -> List[Dict[str, Any]]:
        """Queue contents without payloads, for monitoring"""
        return [item.summary() for item in self._queue]

    async def clear_queue(self) -> None:
        self._queue = []
        await self._save_queue()
        logger.info("[Queue] Offline queue cleared")

    async def remove_from_queue(self, item_id: str) -> bool:
        remaining = [item for item in self._queue if item.id != item_id]
        if len(remaining) == len(self._queue):
            return False
        self._queue = remaining
        await self._save_queue()
        return True

    def __len__(self) -> int:
        return len(self._queue)
