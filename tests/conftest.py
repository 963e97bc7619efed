# conftest.py
# Shared fixtures: in-memory backend, fake device services, fake clock/timer/sleep.

from typing import Callable, List

import httpx
import numpy as np
import pytest

from delivery.backend.device import LogNotifier, StaticLocationService
from delivery.backend.store import InMemoryDocumentStore
from delivery.context import AppContext
from delivery.orders.repository import ORDERS, PROVIDERS
from delivery.tracking.models import Coord
from delivery.tracking.tracking_config import TrackingConfig

PROVIDER = Coord(31.5204, 74.3587)
CUSTOMER = Coord(31.4834, 74.3265)


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeTimer:
    """Stands in for IntervalTimer; the test fires it by hand."""

    created: List["FakeTimer"] = []

    def __init__(self, interval_s: float, callback: Callable[[], object]) -> None:
        self.interval_s = interval_s
        self.callback = callback
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    @property
    def active(self) -> bool:
        return self.started and not self.cancelled

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.active:
            self.callback()


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def config() -> TrackingConfig:
    return TrackingConfig(routing_api_key="test-key")


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_timer():
    FakeTimer.created = []
    return FakeTimer


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    store = InMemoryDocumentStore()
    store.put(PROVIDERS, "p1", {
        "name": "Fresh Fold",
        "location": {"coordinates": PROVIDER.to_dict()},
    })
    store.put(ORDERS, "o1", {
        "status": "Out for Delivery",
        "customerId": "c1",
        "serviceProviderId": "p1",
        "totalPrice": 1200,
    })
    return store


@pytest.fixture
def notifier() -> LogNotifier:
    return LogNotifier()


@pytest.fixture
def context(store, notifier, config) -> AppContext:
    # Geocoder gets a transport that always fails; the session must cope
    def refuse(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    http = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
    return AppContext(
        store=store,
        location=StaticLocationService(CUSTOMER),
        notifications=notifier,
        config=config,
        http=http,
    )
