import asyncio

import httpx
import numpy as np
import pytest

from conftest import CUSTOMER, PROVIDER
from delivery.backend.device import LogNotifier, StaticLocationService
from delivery.backend.geocoder import NominatimGeocoder
from delivery.context import AppContext
from delivery.errors import InvalidTransitionError, TrackingError
from delivery.orders.repository import ORDERS, PROVIDERS
from delivery.orders.status_machine import Timeline
from delivery.tracking.models import Coord, RouteSource, SimulatorStatus
from delivery.tracking.route_provider import RouteProvider
from delivery.tracking.session import ARRIVAL_TITLE, TrackingSession, format_eta
from delivery.tracking.simulator import PositionSimulator
from delivery.tracking.tracking_config import TrackingConfig

GEOJSON_OK = {
    "features": [{
        "geometry": {"coordinates": [PROVIDER.to_lon_lat(), [74.3401, 31.5002], CUSTOMER.to_lon_lat()]},
        "properties": {"summary": {"distance": 5234.0}},
    }],
}


def route_provider(config, sleep, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json=GEOJSON_OK)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RouteProvider(config, client=client, sleep=sleep, rng=np.random.default_rng(1))


def make_session(context, clock, fake_timer, sleep, **kwargs):
    return TrackingSession(
        context, "o1", "p1",
        route_provider=route_provider(context.config, sleep),
        simulator=PositionSimulator(context.config, clock=clock, timer_factory=fake_timer),
        **kwargs,
    )


# ---------------------------------------------------------------------------
# ETA label
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("minutes, label", [
    (None, "--:--"),
    (0, "Arrived"),
    (-3, "Arrived"),
    (3, "03:00"),
    (2.5, "02:30"),
    (2.9999, "03:00"),
    (125, "125:00"),
])
def test_format_eta(minutes, label):
    assert format_eta(minutes) == label


# ---------------------------------------------------------------------------
# Opening
# ---------------------------------------------------------------------------

def test_open_resolves_positions_route_and_status(context, clock, fake_timer, sleep, notifier):
    session = make_session(context, clock, fake_timer, sleep)
    asyncio.run(session.open())

    assert session.provider_coord == PROVIDER
    assert session.customer_coord == CUSTOMER
    assert session.route.source is RouteSource.PRIMARY
    assert session.region.center == Coord((PROVIDER.lat + CUSTOMER.lat) / 2, (PROVIDER.lon + CUSTOMER.lon) / 2)
    assert session.simulator.status is SimulatorStatus.RUNNING
    assert notifier.permission_requests == 1

    view = session.snapshot()
    assert view.position == PROVIDER
    assert view.remaining_km == 5.2
    assert view.eta_label == f"{view.eta_minutes:02d}:00"
    assert view.order_status == "Out for Delivery"
    assert view.customer_address is None        # geocoder unavailable in this context
    assert 0.0 <= view.heading_deg < 360.0
    assert isinstance(session.order_view, Timeline)
    assert session.order_view.current_index == 3
    session.close()


def test_missing_provider_location_uses_fallback(context, store, clock, fake_timer, sleep):
    store.put(PROVIDERS, "p1", {"name": "No location yet"})
    session = make_session(context, clock, fake_timer, sleep)
    asyncio.run(session.open())
    assert session.provider_coord == context.config.fallback_provider_coord
    session.close()


def test_denied_location_puts_customer_next_to_provider(context, clock, fake_timer, sleep):
    context.location = StaticLocationService(CUSTOMER, granted=False)
    session = make_session(context, clock, fake_timer, sleep)
    asyncio.run(session.open())
    assert session.customer_coord == Coord(PROVIDER.lat + 0.01, PROVIDER.lon + 0.01)
    session.close()


def test_location_timeout_falls_back(store, notifier, clock, fake_timer, sleep):
    config = TrackingConfig(location_timeout_s=0.01)
    context = AppContext(
        store=store,
        location=StaticLocationService(CUSTOMER, delay_s=1.0),
        notifications=notifier,
        config=config,
    )
    session = make_session(context, clock, fake_timer, sleep, customer_address="12 Main Boulevard")
    asyncio.run(session.open())
    assert session.customer_coord == Coord(PROVIDER.lat + 0.01, PROVIDER.lon + 0.01)
    assert session.snapshot().customer_address == "12 Main Boulevard"
    session.close()


def test_invalid_customer_position_raises_tracking_error(context, store, clock, fake_timer, sleep):
    context.location = StaticLocationService(Coord(float("nan"), 74.0))
    session = make_session(context, clock, fake_timer, sleep)

    with pytest.raises(TrackingError) as excinfo:
        asyncio.run(session.open())

    assert excinfo.value.title == "Tracking Error"
    assert session.closed
    assert store.listener_count == 0
    assert session.simulator.status is SimulatorStatus.IDLE


def test_customer_address_is_reverse_geocoded(store, notifier, config, clock, fake_timer, sleep):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"display_name": "Model Town, Lahore, Pakistan"})

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    context = AppContext(
        store=store,
        location=StaticLocationService(CUSTOMER),
        notifications=notifier,
        config=config,
        geocoder=NominatimGeocoder(config, client=http),
    )
    session = make_session(context, clock, fake_timer, sleep)
    asyncio.run(session.open())
    assert session.customer_address == "Model Town, Lahore, Pakistan"
    session.close()


# ---------------------------------------------------------------------------
# Live updates
# ---------------------------------------------------------------------------

def test_status_changes_reach_the_snapshot(context, store, clock, fake_timer, sleep):
    session = make_session(context, clock, fake_timer, sleep)

    async def scenario():
        await session.open()
        await store.update(ORDERS, "o1", {"status": "Delivered"})

    asyncio.run(scenario())
    assert session.snapshot().order_status == "Delivered"
    assert session.order_view.current_index == 4
    session.close()


def test_cancel_is_rejected_once_out_for_delivery(context, clock, fake_timer, sleep):
    session = make_session(context, clock, fake_timer, sleep)

    async def scenario():
        await session.open()
        with pytest.raises(InvalidTransitionError):
            await session.cancel_order("changed my mind")

    asyncio.run(scenario())
    session.close()


def test_arrival_sends_one_notification(context, clock, fake_timer, sleep, notifier):
    session = make_session(context, clock, fake_timer, sleep)

    async def scenario():
        await session.open()
        session.simulator.advance(clock.advance(3600.0))
        await asyncio.sleep(0)
        session.simulator.advance(clock.advance(5.0))
        await asyncio.sleep(0)

    asyncio.run(scenario())
    view = session.snapshot()
    assert view.has_arrived
    assert view.eta_label == "Arrived"
    assert [title for title, _ in notifier.sent] == [ARRIVAL_TITLE]
    session.close()


def test_arrival_is_silent_without_notification_permission(context, clock, fake_timer, sleep):
    context.notifications = LogNotifier(granted=False)
    session = make_session(context, clock, fake_timer, sleep)

    async def scenario():
        await session.open()
        session.simulator.advance(clock.advance(3600.0))
        await asyncio.sleep(0)

    asyncio.run(scenario())
    assert session.snapshot().has_arrived
    assert context.notifications.sent == []
    session.close()


# ---------------------------------------------------------------------------
# Closing
# ---------------------------------------------------------------------------

def test_close_releases_every_timer_and_listener(context, store, clock, fake_timer, sleep):
    session = make_session(context, clock, fake_timer, sleep)
    asyncio.run(session.open())
    assert store.listener_count == 1
    assert session.simulator.timer_active

    session.close()
    session.close()

    assert store.listener_count == 0
    assert not session.simulator.timer_active
    assert fake_timer.created[0].cancelled
    assert session.simulator.status is SimulatorStatus.IDLE
    assert not session.status_machine.watching


def test_context_manager_cancels_real_timer(context, store, sleep):
    config = TrackingConfig(tick_interval_s=0.01)
    ticks = []

    async def scenario():
        simulator = PositionSimulator(config)
        simulator.on_update(ticks.append)
        session = TrackingSession(
            context, "o1", "p1",
            route_provider=route_provider(config, sleep),
            simulator=simulator,
        )
        async with session:
            await asyncio.sleep(0.05)
            assert session.simulator.timer_active
        count = len(ticks)
        await asyncio.sleep(0.03)
        return session, count

    session, count = asyncio.run(scenario())
    assert count >= 1
    assert len(ticks) == count
    assert not session.simulator.timer_active
    assert store.listener_count == 0


def test_closed_session_cannot_be_reopened(context, clock, fake_timer, sleep):
    session = make_session(context, clock, fake_timer, sleep)
    session.close()
    with pytest.raises(RuntimeError):
        asyncio.run(session.open())
