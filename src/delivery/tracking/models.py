# models.py
# Shared data structures and enums used across the tracking modules.

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Sequence, Tuple


# ---------------------------------------------------------------------------
# Coordinate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Coord:
    """Immutable geographic coordinate in decimal degrees."""
    lat: float
    lon: float

    def to_dict(self) -> dict:
        return {"latitude": self.lat, "longitude": self.lon}

    def to_lon_lat(self) -> list:
        """[lon, lat] pair, the order routing APIs expect."""
        return [self.lon, self.lat]

    @staticmethod
    def from_dict(d: dict) -> "Coord":
        return Coord(float(d["latitude"]), float(d["longitude"]))


# ---------------------------------------------------------------------------
# Route path
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RoutePath:
    """Ordered, immutable travel path from origin to destination."""
    points: Tuple[Coord, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", tuple(self.points))
        if len(self.points) < 2:
            raise ValueError(f"A route path needs at least 2 points, got {len(self.points)}.")

    @classmethod
    def of(cls, points: Sequence[Coord]) -> "RoutePath":
        return cls(tuple(points))

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, index: int) -> Coord:
        return self.points[index]

    def __iter__(self) -> Iterator[Coord]:
        return iter(self.points)

    @property
    def start(self) -> Coord:
        return self.points[0]

    @property
    def end(self) -> Coord:
        return self.points[-1]


class RouteSource(Enum):
    PRIMARY   = "primary"
    ALTERNATE = "alternate"
    FALLBACK  = "fallback"


@dataclass(frozen=True)
class RouteResult:
    """Path plus the summary figures computed once per fetch."""
    path: RoutePath
    distance_km: float
    duration_minutes: int
    source: RouteSource
    traffic_factor: float = 1.0
    attempts: int = 0


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

class SimulatorStatus(Enum):
    IDLE    = "idle"
    RUNNING = "running"
    ARRIVED = "arrived"


@dataclass(frozen=True)
class SimulationState:
    """Snapshot of the simulated mover. Replaced, never mutated, on each tick."""
    position: Coord
    remaining_km: float
    eta_minutes: int
    path_index: float = 0.0        # fractional index into the route path
    has_arrived: bool = False
    heading_deg: float = 0.0       # bearing of the segment being driven, for the driver marker

    @property
    def segment(self) -> int:
        return int(math.floor(self.path_index))


@dataclass(frozen=True)
class MapRegion:
    """Viewport framing two markers."""
    center: Coord
    lat_delta: float
    lon_delta: float


@dataclass
class TrackingView:
    """Everything the live-tracking screen renders on one frame."""
    position: Optional[Coord]
    remaining_km: Optional[float]
    eta_minutes: Optional[int]
    eta_label: str
    has_arrived: bool
    route_source: Optional[RouteSource] = None
    order_status: Optional[str] = None
    customer_address: Optional[str] = None
    heading_deg: Optional[float] = None
