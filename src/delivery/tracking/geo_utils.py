# geo_utils.py
# Pure mathematical / geographic helper functions.
# No side effects; depends only on models and config constants.

import math
from typing import Optional, Sequence

from shapely.geometry import LineString, Point

from ..errors import InvalidCoordinateError
from .models import Coord, MapRegion
from .tracking_config import EARTH_RADIUS_KM


def haversine_km(a: Coord, b: Coord) -> float:
    """
    Great-circle distance between two points in kilometres.

    Args:
        a, b: Coordinates in decimal degrees.

    Returns:
        Distance in kilometres (>= 0).
    """
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(d_lon / 2) ** 2
    )
    h = min(1.0, h)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def path_length_km(points: Sequence[Coord]) -> float:
    """Sum of the great-circle lengths of consecutive segments."""
    return sum(haversine_km(p, q) for p, q in zip(points, points[1:]))


def is_valid_coord(coord: Optional[Coord]) -> bool:
    """True when both components are finite and inside their ranges."""
    if coord is None:
        return False
    try:
        lat, lon = float(coord.lat), float(coord.lon)
    except (TypeError, ValueError, AttributeError):
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return abs(lat) <= 90 and abs(lon) <= 180


def validate_coord(coord: Optional[Coord], label: str = "coordinate") -> Coord:
    """
    Return `coord` unchanged or raise.

    Raises:
        InvalidCoordinateError: If the coordinate is missing, NaN or out of range.
    """
    if not is_valid_coord(coord):
        raise InvalidCoordinateError(f"Invalid {label}: {coord!r}")
    return coord


def interpolate(a: Coord, b: Coord, fraction: float) -> Coord:
    """Linear interpolation `a + (b - a) * fraction` in degree space."""
    return Coord(
        a.lat + (b.lat - a.lat) * fraction,
        a.lon + (b.lon - a.lon) * fraction,
    )


def calculate_bearing(a: Coord, b: Coord) -> float:
    """
    Forward azimuth (bearing) from a to b in degrees [0, 360).

    Used to rotate the driver marker.
    """
    rlat1, rlon1 = math.radians(a.lat), math.radians(a.lon)
    rlat2, rlon2 = math.radians(b.lat), math.radians(b.lon)
    d_lon = rlon2 - rlon1
    y = math.sin(d_lon) * math.cos(rlat2)
    x = math.cos(rlat1) * math.sin(rlat2) - math.sin(rlat1) * math.cos(rlat2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360


def map_region(a: Coord, b: Coord, padding: float = 2.5, min_delta: float = 0.02) -> MapRegion:
    """
    Viewport centred between two points with both of them visible.

    Args:
        a, b:      The two markers (provider and customer).
        padding:   Multiplier applied to the raw lat/lon spans.
        min_delta: Lower bound for either delta, so close points are not over-zoomed.
    """
    return MapRegion(
        center=Coord((a.lat + b.lat) / 2, (a.lon + b.lon) / 2),
        lat_delta=max(min_delta, abs(a.lat - b.lat) * padding),
        lon_delta=max(min_delta, abs(a.lon - b.lon) * padding),
    )


def max_lateral_deviation(points: Sequence[Coord], start: Coord, end: Coord) -> float:
    """
    Largest planar distance (degrees) of any point from the segment start -> end.

    Args:
        points: Path points to measure.
        start:  Segment origin.
        end:    Segment destination.
    """
    if start == end:
        reference = Point(start.lon, start.lat)
    else:
        reference = LineString([(start.lon, start.lat), (end.lon, end.lat)])
    return max((reference.distance(Point(p.lon, p.lat)) for p in points), default=0.0)
