# route_adapters.py
# The two routing API response shapes, decoded into a common RoutePath.
#
#   GeoJsonRoute         -> POST .../geojson  (features[0].geometry.coordinates)
#   EncodedPolylineRoute -> POST .../json     (routes[0].geometry, polyline precision 5)

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..errors import RouteFetchError
from .geo_utils import is_valid_coord
from .models import Coord, RoutePath
from .polyline import decode_polyline


def _summary_distance_m(summary: Any) -> Optional[float]:
    if not isinstance(summary, dict) or "distance" not in summary:
        return None
    try:
        return float(summary["distance"])
    except (TypeError, ValueError):
        return None


def _to_path(points: List[Coord]) -> RoutePath:
    invalid = [p for p in points if not is_valid_coord(p)]
    if invalid:
        raise RouteFetchError(
            f"Route contains {len(invalid)} invalid coordinate(s), first: {invalid[0]!r}"
        )
    try:
        return RoutePath.of(points)
    except ValueError as e:
        raise RouteFetchError(str(e)) from e


@dataclass(frozen=True)
class GeoJsonRoute:
    """GeoJSON feature collection; coordinates are [lon, lat] pairs."""
    coordinates: List[List[float]]
    distance_m: Optional[float] = None

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> "GeoJsonRoute":
        """
        Raises:
            RouteFetchError: If the payload carries no route feature.
        """
        features = payload.get("features") if isinstance(payload, dict) else None
        if not isinstance(features, list) or not features:
            raise RouteFetchError("No valid route found in GeoJSON response.")
        feature = features[0]
        if not isinstance(feature, dict):
            raise RouteFetchError(f"GeoJSON feature is not an object: {feature!r}")
        geometry = feature.get("geometry")
        coordinates = geometry.get("coordinates") if isinstance(geometry, dict) else None
        if not isinstance(coordinates, list):
            raise RouteFetchError("GeoJSON route without geometry coordinates.")
        properties = feature.get("properties") or {}
        if not isinstance(properties, dict):
            raise RouteFetchError(f"GeoJSON feature properties are not an object: {properties!r}")
        summary = properties.get("summary")
        return GeoJsonRoute(coordinates=coordinates, distance_m=_summary_distance_m(summary))

    def to_path(self) -> RoutePath:
        try:
            points = [Coord(float(c[1]), float(c[0])) for c in self.coordinates]
        except (IndexError, KeyError, TypeError, ValueError) as e:
            raise RouteFetchError(f"Malformed GeoJSON coordinates: {e}") from e
        return _to_path(points)


@dataclass(frozen=True)
class EncodedPolylineRoute:
    """Directions JSON with an encoded polyline geometry."""
    geometry: str
    distance_m: Optional[float] = None
    precision: int = 5

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> "EncodedPolylineRoute":
        """
        Raises:
            RouteFetchError: If the payload carries no route or no geometry string.
        """
        routes = payload.get("routes") if isinstance(payload, dict) else None
        if not isinstance(routes, list) or not routes:
            raise RouteFetchError("No valid route found in JSON response.")
        route = routes[0]
        if not isinstance(route, dict):
            raise RouteFetchError(f"JSON route is not an object: {route!r}")
        geometry = route.get("geometry")
        if not isinstance(geometry, str) or not geometry:
            raise RouteFetchError("JSON route without encoded geometry.")
        return EncodedPolylineRoute(geometry=geometry, distance_m=_summary_distance_m(route.get("summary")))

    def to_path(self) -> RoutePath:
        try:
            points = decode_polyline(self.geometry, self.precision)
        except ValueError as e:
            raise RouteFetchError(f"Error decoding polyline: {e}") from e
        return _to_path(points)


RouteResponse = Union[GeoJsonRoute, EncodedPolylineRoute]
