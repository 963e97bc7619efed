# simulator.py
# Moves a simulated provider along a RoutePath at constant speed.
#
# tick() is a pure function over SimulationState; PositionSimulator is the
# thin stateful shell that owns the clock, the timer and the callbacks.

import logging
import math
import time
from dataclasses import replace
from typing import Callable, List, Optional

from .geo_utils import calculate_bearing, interpolate
from .models import RoutePath, SimulationState, SimulatorStatus
from .ticker import IntervalTimer
from .tracking_config import TrackingConfig

logger = logging.getLogger(__name__)

Handler = Callable[[SimulationState], None]
Unsubscribe = Callable[[], None]
TimerFactory = Callable[[float, Callable[[], None]], IntervalTimer]


# ---------------------------------------------------------------------------
# Pure core
# ---------------------------------------------------------------------------

def eta_minutes(remaining_km: float, speed_kmh: float) -> int:
    """Whole minutes left at `speed_kmh`, rounded up, never negative."""
    if speed_kmh <= 0:
        return 0
    return max(0, math.ceil(remaining_km / speed_kmh * 60))


def segment_heading(path: RoutePath, segment: int) -> float:
    """Bearing in degrees of segment `segment`; the last segment past the end of the path."""
    segment = max(0, min(segment, len(path) - 2))
    return calculate_bearing(path[segment], path[segment + 1])


def initial_state(path: RoutePath, total_km: float, speed_kmh: float) -> SimulationState:
    """State at the moment a route is obtained: at the origin, nothing travelled."""
    remaining = max(0.0, float(total_km))
    return SimulationState(
        position=path.start,
        remaining_km=remaining,
        eta_minutes=eta_minutes(remaining, speed_kmh),
        path_index=0.0,
        has_arrived=False,
        heading_deg=segment_heading(path, 0),
    )


def arrived_state(path: RoutePath, state: SimulationState) -> SimulationState:
    return replace(
        state,
        position=path.end,
        remaining_km=0.0,
        eta_minutes=0,
        path_index=float(len(path) - 1),
        has_arrived=True,
    )


def tick(
    state: SimulationState,
    path: RoutePath,
    elapsed_s: float,
    total_km: float,
    speed_kmh: float,
    arrival_threshold_km: float = 0.05,
) -> SimulationState:
    """
    Advance the mover by the distance covered in `elapsed_s`.

    Args:
        state:                Current state. Returned unchanged once arrived.
        path:                 Route being followed.
        elapsed_s:            Wall-clock seconds since the previous tick.
        total_km:             Route length the simulation was started with.
        speed_kmh:            Constant travel speed.
        arrival_threshold_km: Remaining distance at which the mover counts as arrived.

    Returns:
        New SimulationState.
    """
    if state.has_arrived:
        return state

    last = len(path) - 1
    moved_km = speed_kmh / 3600 * max(0.0, elapsed_s)
    remaining = max(0.0, state.remaining_km - moved_km)

    km_per_segment = total_km / last if total_km > 0 else 0.0
    if km_per_segment > 0:
        index = min(float(last), state.path_index + moved_km / km_per_segment)
    else:
        index = float(last)

    segment = int(math.floor(index))
    if segment < last:
        position = interpolate(path[segment], path[segment + 1], index - segment)
    else:
        position = path.end

    new_state = SimulationState(
        position=position,
        remaining_km=remaining,
        eta_minutes=eta_minutes(remaining, speed_kmh),
        path_index=index,
        has_arrived=False,
        heading_deg=segment_heading(path, segment),
    )

    if segment >= last or remaining <= arrival_threshold_km:
        return arrived_state(path, new_state)
    return new_state


# ---------------------------------------------------------------------------
# Stateful simulator
# ---------------------------------------------------------------------------

class PositionSimulator:
    """
    Idle -> Running -> Arrived state machine around tick().

    Usage:
        sim = PositionSimulator(config)
        sim.on_arrival(lambda s: notify("arrived"))
        sim.start(route.path, route.distance_km)   # inside a running event loop
        ...
        sim.stop()

    Args:
        config:        TrackingConfig instance.
        clock:         Monotonic clock in seconds.
        timer_factory: Builds the repeating timer; pass None to drive advance() by hand.
    """

    def __init__(
        self,
        config: Optional[TrackingConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: Optional[TimerFactory] = IntervalTimer,
    ) -> None:
        self.config = config or TrackingConfig()
        self._clock = clock
        self._timer_factory = timer_factory
        self._timer: Optional[IntervalTimer] = None

        self._status = SimulatorStatus.IDLE
        self._state: Optional[SimulationState] = None
        self._path: Optional[RoutePath] = None
        self._total_km = 0.0
        self._speed_kmh = self.config.speed_kmh
        self._last_update = 0.0

        self._update_handlers: List[Handler] = []
        self._arrival_handlers: List[Handler] = []

    # ------------------------------------------------------------------
    # Read-only properties
    # ------------------------------------------------------------------

    @property
    def status(self) -> SimulatorStatus:
        return self._status

    @property
    def state(self) -> Optional[SimulationState]:
        return self._state

    @property
    def path(self) -> Optional[RoutePath]:
        return self._path

    @property
    def speed_kmh(self) -> float:
        return self._speed_kmh

    @property
    def timer_active(self) -> bool:
        return self._timer is not None and self._timer.active

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_update(self, handler: Handler) -> Unsubscribe:
        """Called after every tick with the new state."""
        return self._subscribe(self._update_handlers, handler)

    def on_arrival(self, handler: Handler) -> Unsubscribe:
        """Called exactly once per run, when the mover arrives."""
        return self._subscribe(self._arrival_handlers, handler)

    @staticmethod
    def _subscribe(handlers: List[Handler], handler: Handler) -> Unsubscribe:
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, path: RoutePath, total_km: float, speed_kmh: Optional[float] = None) -> SimulationState:
        """
        Begin a run along `path`. Any previous run is stopped first.

        Returns:
            The initial SimulationState.
        """
        self.stop()
        self._path = path
        self._total_km = max(0.0, float(total_km))
        self._speed_kmh = self.config.speed_kmh if speed_kmh is None else float(speed_kmh)
        self._state = initial_state(path, self._total_km, self._speed_kmh)
        self._last_update = self._clock()
        self._status = SimulatorStatus.RUNNING
        logger.info(
            f"Starting simulation with {len(path)} points, distance: "
            f"{self._total_km:.2f} km, ETA {self._state.eta_minutes} min"
        )

        if self._timer_factory is not None:
            self._timer = self._timer_factory(self.config.tick_interval_s, self.advance)
            self._timer.start()
        return self._state

    def advance(self, now: Optional[float] = None) -> Optional[SimulationState]:
        """
        Timer callback: apply one tick using the wall-clock time since the last one.

        Late ticks advance the full elapsed distance. Does nothing unless running.
        """
        if self._status is not SimulatorStatus.RUNNING or self._state is None:
            return self._state

        now = self._clock() if now is None else now
        elapsed = now - self._last_update
        self._last_update = now

        self._state = tick(
            self._state,
            self._path,
            elapsed,
            self._total_km,
            self._speed_kmh,
            self.config.arrival_threshold_km,
        )
        logger.debug(
            f"Tick: index {self._state.path_index:.2f}, "
            f"{self._state.remaining_km:.2f} km left, ETA {self._state.eta_minutes} min"
        )

        arrived = self._state.has_arrived
        if arrived:
            self._status = SimulatorStatus.ARRIVED
            self._cancel_timer()
            logger.info("Reached destination, stopping simulation")

        self._notify(self._update_handlers)
        if arrived:
            self._notify(self._arrival_handlers)

        return self._state

    def _notify(self, handlers: List[Handler]) -> None:
        for handler in list(handlers):
            try:
                handler(self._state)
            except Exception:
                logger.exception(f"Simulation handler {handler!r} failed")

    def stop(self) -> None:
        """Clear the timer and return to Idle. Safe to call repeatedly."""
        self._cancel_timer()
        if self._status is not SimulatorStatus.IDLE:
            logger.info(f"Simulation stopped ({self._status.value})")
        self._status = SimulatorStatus.IDLE

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
