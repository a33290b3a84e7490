"""Pytest configuration for the storefront client test suite."""

from typing import List

import pytest

from storefront_client.auth import AuthSession, NullNavigator
from storefront_client.config import APIConfig, CacheConfig, NetworkConfig, QueueConfig
from storefront_client.http_client import HttpClient
from storefront_client.storage import InMemoryKeyValueStore

BASE_URL = "http://api.test"
START_MS = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-millisecond clock."""

    def __init__(self, start: int = START_MS):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingSleep:
    """Backoff sleeper that returns immediately and records the delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class ScriptedReachability:
    """Connectivity check returning a settable reachability flag."""

    def __init__(self, reachable: bool = True):
        self.reachable = reachable
        self.calls = 0

    async def __call__(self) -> bool:
        self.calls += 1
        return self.reachable


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def session(store) -> AuthSession:
    return AuthSession(store)


@pytest.fixture
def navigator() -> NullNavigator:
    return NullNavigator()


@pytest.fixture
def api_config() -> APIConfig:
    return APIConfig(base_url=BASE_URL, timeout=5.0, retry_attempts=3, retry_delay=1.0)


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig()


@pytest.fixture
def network_config() -> NetworkConfig:
    # Long timer period: tests drive polling through poll_once()
    return NetworkConfig(poll_interval=3600.0, connectivity_check_interval=30000)


@pytest.fixture
def queue_config() -> QueueConfig:
    return QueueConfig()


@pytest.fixture
def http_client(api_config, session, navigator, sleeper) -> HttpClient:
    return HttpClient(api_config, session, navigator, sleep=sleeper)


@pytest.fixture
def reachability() -> ScriptedReachability:
    return ScriptedReachability()
