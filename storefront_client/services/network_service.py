"""
Backend reachability monitoring

Connectivity is defined operationally: the backend is reachable when the
status endpoint answers successfully. The check is an injected coroutine so
platform connectivity signals can replace it without touching subscribers.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

import httpx

from ..config import NetworkConfig
from ..errors import NetworkError
from ..models.network import NetworkState
from ..utils.clock import Clock, now_ms
from ..utils.logger import get_logger

logger = get_logger(__name__)

ConnectivityCheck = Callable[[], Awaitable[bool]]
NetworkListener = Callable[[NetworkState], None]

WRITE_METHODS = ("POST", "PUT", "DELETE")
NON_QUEUEABLE_PATHS = ("/login", "/logout", "/register", "/upload")

MAX_RETRY_DELAY_MS = 30000


class NetworkService:
    """Polls the connectivity check and notifies listeners on state changes"""

    def __init__(self, check: ConnectivityCheck, network_config: Optional[NetworkConfig] = None,
                 clock: Optional[Clock] = None):
        """
        Initialize network monitoring

        Args:
            check: Coroutine returning True when the backend is reachable
            network_config: Timer period and minimum check interval
            clock: Epoch-millisecond clock, injectable for tests
        """
        config = network_config or NetworkConfig()
        self.check = check
        self.poll_interval = config.poll_interval
        self.connectivity_check_interval = config.connectivity_check_interval
        self.clock = clock or now_ms

        self._is_connected = True
        self._listeners: List[NetworkListener] = []
        self._last_check = 0
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Check once for the initial state, then start the polling task"""
        self._is_connected = await self.check()
        self._last_check = self.clock()
        logger.info(f"[Network] Monitoring initialized. Connected: {self._is_connected}")

        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Cancel polling and drop all listeners"""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._listeners = []
        logger.info("[Network] Monitoring stopped")

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"[Network] Connectivity poll failed: {e}", exc_info=True)

    async def poll_once(self) -> bool:
        """
        One timer tick; checks only when the minimum interval has elapsed

        Returns:
            True if a check was made
        """
        now = self.clock()
        if now - self._last_check < self.connectivity_check_interval:
            return False

        self._last_check = now
        self._update(await self.check())
        return True

    async def check_connectivity(self) -> bool:
        """Force an immediate check and return the fresh state"""
        connected = await self.check()
        self._last_check = self.clock()
        self._update(connected)
        return self._is_connected

    def _update(self, connected: bool) -> None:
        if connected == self._is_connected:
            return
        self._is_connected = connected
        logger.info(f"[Network] Status changed: {'Online' if connected else 'Offline'}")
        self._notify_listeners()

    def _notify_listeners(self) -> None:
        state = self.get_network_state()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.error(f"[Network] Listener failed: {e}", exc_info=True)

    def add_listener(self, listener: NetworkListener) -> Callable[[], None]:
        """
        Subscribe to connectivity changes

        The listener is invoked immediately with the current state.

        Returns:
            Unsubscribe function
        """
        self._listeners.append(listener)
        listener(self.get_network_state())

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_network_state(self) -> NetworkState:
        return NetworkState.from_reachability(self._is_connected)

    def is_online(self) -> bool:
        return self._is_connected

    def is_offline(self) -> bool:
        return not self._is_connected

    def set_connectivity_check_interval(self, interval_ms: int) -> None:
        self.connectivity_check_interval = interval_ms

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


def should_queue_request(method: str, endpoint: str) -> bool:
    """Only write methods are queued; auth endpoints and uploads never are"""
    if method.upper() not in WRITE_METHODS:
        return False
    return not any(path in endpoint for path in NON_QUEUEABLE_PATHS)


def is_network_error(error: BaseException) -> bool:
    """Whether a failure means the backend could not be reached"""
    return isinstance(error, (NetworkError, httpx.TransportError, asyncio.TimeoutError, ConnectionError))


def get_retry_delay(attempt: int) -> int:
    """Exponential backoff in ms: 1s, 2s, 4s ... capped at 30s"""
    return min(1000 * 2 ** max(attempt - 1, 0), MAX_RETRY_DELAY_MS)
