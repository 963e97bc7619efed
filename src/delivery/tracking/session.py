# session.py
# Live-tracking screen controller.
# Owns every timer, task and listener of one tracking screen; close() releases them all.

import asyncio
import logging
from typing import Callable, List, Optional, Set

from ..backend.device import LocationService
from ..context import AppContext
from ..errors import BackendError, InvalidCoordinateError, LocationUnavailableError, TrackingError
from ..orders.repository import OrderRepository, ProviderRepository
from ..orders.status_machine import OrderStatusMachine, TimelineView
from .geo_utils import map_region, validate_coord
from .models import Coord, MapRegion, RouteResult, SimulationState, TrackingView
from .route_provider import RouteProvider
from .simulator import PositionSimulator

logger = logging.getLogger(__name__)

ARRIVAL_TITLE = "Service Provider Arrived"
ARRIVAL_BODY = "Your service provider has arrived at your location."


def format_eta(minutes: Optional[float]) -> str:
    """ETA label: --:-- when unknown, Arrived at or below zero, otherwise MM:SS (2.5 -> 02:30)."""
    if minutes is None:
        return "--:--"
    if minutes <= 0:
        return "Arrived"
    mins, secs = divmod(int(round(minutes * 60)), 60)
    return f"{mins:02d}:{secs:02d}"


class TrackingSession:
    """
    One customer watching one provider drive to them.

    Usage:
        async with TrackingSession(context, order_id, provider_id) as session:
            ...
            view = session.snapshot()

    Args:
        context:          AppContext with the store, device services and config.
        order_id:         Order being tracked.
        provider_id:      Service provider document id.
        customer_address: Address label; reverse-geocoded on open() if omitted.
        route_provider:   RouteProvider; built from the context if omitted.
        simulator:        PositionSimulator; built from the context config if omitted.
    """

    def __init__(
        self,
        context: AppContext,
        order_id: str,
        provider_id: str,
        customer_address: Optional[str] = None,
        route_provider: Optional[RouteProvider] = None,
        simulator: Optional[PositionSimulator] = None,
    ) -> None:
        self.context = context
        self.config = context.config
        self.order_id = order_id
        self.provider_id = provider_id
        self.customer_address = customer_address

        self._routes = route_provider or RouteProvider(self.config, client=context.http)
        self._simulator = simulator or PositionSimulator(self.config)
        self._status = OrderStatusMachine(OrderRepository(context.store))
        self._providers = ProviderRepository(context.store)

        self.provider_coord: Optional[Coord] = None
        self.customer_coord: Optional[Coord] = None
        self.region: Optional[MapRegion] = None
        self.route: Optional[RouteResult] = None

        self._notifications_granted: Optional[bool] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._tasks: Set[asyncio.Task] = set()
        self._opened = False
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def simulator(self) -> PositionSimulator:
        return self._simulator

    @property
    def status_machine(self) -> OrderStatusMachine:
        return self._status

    @property
    def order_view(self) -> Optional[TimelineView]:
        return self._status.view

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> "TrackingSession":
        """
        Resolve both positions, fetch the route and start tracking.

        Returns:
            self, for chaining.

        Raises:
            TrackingError: If the positions cannot be validated. The session is
                           closed before the error propagates.
        """
        if self._closed:
            raise RuntimeError("TrackingSession is closed")
        if self._opened:
            return self
        self._opened = True

        try:
            await self._open()
        except BaseException:
            self.close()
            raise
        return self

    async def _open(self) -> None:
        location = self.context.location
        location_granted = await location.request_permission()
        if not location_granted:
            logger.warning("Location permission denied, customer position will be estimated")

        provider = await self._provider_location()
        customer = await self._customer_location(location, provider, location_granted)

        try:
            validate_coord(provider, "service provider location")
            validate_coord(customer, "customer location")
        except InvalidCoordinateError as e:
            raise TrackingError(f"Unable to determine locations for tracking: {e}") from e

        self.provider_coord = provider
        self.customer_coord = customer
        self.region = map_region(
            provider, customer,
            padding=self.config.region_padding,
            min_delta=self.config.region_min_delta,
        )

        await self._request_notification_permission()

        self.route = await self._routes.fetch_route(provider, customer)
        logger.info(
            f"Tracking order {self.order_id}: {self.route.distance_km:.1f} km via "
            f"{self.route.source.value} route, {self.route.duration_minutes} min"
        )

        self._unsubscribers.append(self._simulator.on_arrival(self._on_arrival))
        self._simulator.start(self.route.path, self.route.distance_km)
        self._unsubscribers.append(self._simulator.stop)

        self._unsubscribers.append(self._status.watch(self.order_id))

        if self.customer_address is None and self.context.geocoder is not None:
            self.customer_address = await self.context.geocoder.reverse(customer)

    def close(self) -> None:
        """Stop the simulator, cancel timers and tasks, end every subscription. Idempotent."""
        if self._closed:
            return
        self._closed = True
        while self._unsubscribers:
            self._unsubscribers.pop()()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        logger.info(f"Tracking session for order {self.order_id} closed")

    async def __aenter__(self) -> "TrackingSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def snapshot(self) -> TrackingView:
        state: Optional[SimulationState] = self._simulator.state
        eta = state.eta_minutes if state is not None else None
        return TrackingView(
            position=state.position if state is not None else self.provider_coord,
            remaining_km=state.remaining_km if state is not None else None,
            eta_minutes=eta,
            eta_label=format_eta(eta),
            has_arrived=state.has_arrived if state is not None else False,
            route_source=self.route.source if self.route is not None else None,
            order_status=self._status.status,
            customer_address=self.customer_address,
            heading_deg=state.heading_deg if state is not None else None,
        )

    async def cancel_order(self, reason: Optional[str] = None) -> None:
        """Cancel the tracked order; the listener pushes the new status back."""
        await self._status.cancel(self.order_id, reason)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _provider_location(self) -> Coord:
        try:
            return await self._providers.location(self.provider_id)
        except (BackendError, InvalidCoordinateError) as e:
            fallback = self.config.fallback_provider_coord
            logger.warning(f"Using fallback provider location {fallback}: {e}")
            return fallback

    async def _customer_location(self, location: LocationService, provider: Coord, granted: bool) -> Coord:
        if granted:
            try:
                return await location.current_position(self.config.location_timeout_s)
            except LocationUnavailableError as e:
                logger.warning(f"Could not get customer location: {e}")

        offset = self.config.fallback_customer_offset_deg
        fallback = Coord(provider.lat + offset, provider.lon + offset)
        logger.warning(f"Using estimated customer location {fallback}")
        return fallback

    async def _request_notification_permission(self) -> None:
        if self._notifications_granted is not None:
            return
        try:
            self._notifications_granted = bool(await self.context.notifications.request_permission())
        except Exception as e:
            logger.warning(f"Notification permission request failed: {e}")
            self._notifications_granted = False
        if not self._notifications_granted:
            logger.info("Notification permission not granted, arrival will not be announced")

    def _on_arrival(self, state: SimulationState) -> None:
        logger.info(f"Provider arrived at {state.position} for order {self.order_id}")
        if not self._notifications_granted or self._closed:
            return
        task = asyncio.get_running_loop().create_task(
            self.context.notifications.notify(ARRIVAL_TITLE, ARRIVAL_BODY)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
