# route_provider.py
# Resolves a drivable path between two coordinates.
# Primary endpoint with retry/backoff -> alternate endpoint -> synthetic fallback.
# Network failures never reach the caller; only invalid coordinates do.

import asyncio
import logging
import math
from typing import Awaitable, Callable, Optional, Tuple, Type

import httpx
import numpy as np

from ..errors import RouteFetchError
from .geo_utils import haversine_km, max_lateral_deviation, path_length_km, validate_coord
from .models import Coord, RoutePath, RouteResult, RouteSource
from .route_adapters import EncodedPolylineRoute, GeoJsonRoute, RouteResponse
from .tracking_config import TrackingConfig

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


# ---------------------------------------------------------------------------
# Synthetic path
# ---------------------------------------------------------------------------

def generate_fallback_path(
    origin: Coord,
    destination: Coord,
    n_points: int = 8,
    max_offset_deg: float = 0.0015,
    rng: Optional[np.random.Generator] = None,
) -> RoutePath:
    """
    Straight line with sine-weighted lateral jitter, to look like a road.

    The jitter is applied perpendicular to the origin -> destination line, so
    no point strays further than `max_offset_deg` from it. The offset is zero
    at both ends and peaks at the midpoint.

    Args:
        origin:         First point of the path.
        destination:    Last point of the path.
        n_points:       Intermediate points between the two ends.
        max_offset_deg: Peak lateral offset in degrees.
        rng:            numpy Generator; a fresh default one if omitted.

    Returns:
        RoutePath with n_points + 2 points.
    """
    rng = rng or np.random.default_rng()

    start = np.array([origin.lat, origin.lon])
    end = np.array([destination.lat, destination.lon])
    direction = end - start
    length = float(np.hypot(*direction))
    # Unit normal in (lat, lon) space; no jitter for a zero-length line
    normal = np.array([-direction[1], direction[0]]) / length if length > 0 else np.zeros(2)

    ratios = np.arange(1, n_points + 1) / (n_points + 1)
    weights = np.sin(ratios * np.pi)
    jitter = rng.uniform(-1.0, 1.0, size=n_points) * max_offset_deg * weights

    base = start + np.outer(ratios, direction)
    middle = base + np.outer(jitter, normal)

    points = [origin]
    points.extend(Coord(float(lat), float(lon)) for lat, lon in middle)
    points.append(destination)
    return RoutePath.of(points)


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------

class RouteProvider:
    """
    Fetches a route from the routing API, degrading to a synthetic path.

    Usage:
        async with httpx.AsyncClient() as client:
            provider = RouteProvider(config, client=client)
            result = await provider.fetch_route(origin, destination)

    Args:
        config: TrackingConfig instance.
        client: Shared httpx.AsyncClient; a short-lived one per request if omitted.
        sleep:  Awaitable sleep used between retries (injectable for tests).
        rng:    numpy Generator for the traffic factor and fallback jitter.
    """

    def __init__(
        self,
        config: Optional[TrackingConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.config = config or TrackingConfig()
        self._client = client
        self._sleep = sleep
        self._rng = rng or np.random.default_rng()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_route(self, origin: Coord, destination: Coord) -> RouteResult:
        """
        Resolve a path between two coordinates.

        Args:
            origin:      Service provider position.
            destination: Customer position.

        Returns:
            RouteResult from the primary endpoint, the alternate endpoint or
            the synthetic fallback, in that order of preference.

        Raises:
            InvalidCoordinateError: If either coordinate is invalid (before any request).
        """
        validate_coord(origin, "origin")
        validate_coord(destination, "destination")

        attempts = 0
        for retry in range(self.config.max_retries):
            if retry > 0:
                delay = self.config.backoff_delay(retry)
                logger.info(f"Waiting {delay:g}s before routing retry {retry + 1}/{self.config.max_retries}")
                await self._sleep(delay)
            attempts += 1
            try:
                return await self._fetch_variant(
                    origin, destination,
                    url=self.config.primary_route_url,
                    accept="application/geo+json",
                    response_type=GeoJsonRoute,
                    traffic_range=self.config.primary_traffic_range,
                    source=RouteSource.PRIMARY,
                    attempts=attempts,
                )
            except (RouteFetchError, httpx.HTTPError, ValueError) as e:
                logger.warning(f"Routing attempt {attempts}/{self.config.max_retries} failed: {e}")

        logger.info("Primary routing endpoint exhausted, trying alternate endpoint")
        attempts += 1
        try:
            return await self._fetch_variant(
                origin, destination,
                url=self.config.alternate_route_url,
                accept="application/json",
                response_type=EncodedPolylineRoute,
                traffic_range=self.config.alternate_traffic_range,
                source=RouteSource.ALTERNATE,
                attempts=attempts,
            )
        except (RouteFetchError, httpx.HTTPError, ValueError) as e:
            logger.warning(f"Alternate routing endpoint failed: {e}")

        logger.warning("All routing attempts failed. Generating fallback route.")
        return self.fallback_route(origin, destination, attempts=attempts)

    def fallback_route(self, origin: Coord, destination: Coord, attempts: int = 0) -> RouteResult:
        """
        Synthetic route used when the routing API is unavailable.

        Distance is the straight-line distance inflated by the detour factor;
        duration assumes the constant configured speed with no traffic.
        """
        validate_coord(origin, "origin")
        validate_coord(destination, "destination")

        path = generate_fallback_path(
            origin, destination,
            n_points=self.config.fallback_points,
            max_offset_deg=self.config.fallback_max_offset_deg,
            rng=self._rng,
        )
        distance_km = haversine_km(origin, destination) * self.config.fallback_detour_factor
        duration = math.ceil(distance_km / self.config.speed_kmh * 60)
        logger.info(
            f"Fallback route generated: {distance_km:.1f} km, {duration} min at "
            f"{self.config.speed_kmh:g} km/h, max deviation "
            f"{max_lateral_deviation(path.points, origin, destination):.5f} deg"
        )
        return RouteResult(
            path=path,
            distance_km=distance_km,
            duration_minutes=duration,
            source=RouteSource.FALLBACK,
            traffic_factor=1.0,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _fetch_variant(
        self,
        origin: Coord,
        destination: Coord,
        url: str,
        accept: str,
        response_type: Type[RouteResponse],
        traffic_range: Tuple[float, float],
        source: RouteSource,
        attempts: int,
    ) -> RouteResult:
        payload = await self._post(url, accept, origin, destination)
        route = response_type.from_payload(payload)
        path = route.to_path()

        if route.distance_m is not None:
            distance_km = round(route.distance_m / 1000, 1)
        else:
            distance_km = round(path_length_km(path.points), 1)

        traffic = float(self._rng.uniform(*traffic_range))
        duration = math.ceil(distance_km / self.config.speed_kmh * 60 * traffic)
        logger.info(
            f"Route from {source.value} endpoint: {len(path)} points, "
            f"{distance_km} km, {duration} min (traffic x{traffic:.2f})"
        )
        return RouteResult(
            path=path,
            distance_km=distance_km,
            duration_minutes=duration,
            source=source,
            traffic_factor=traffic,
            attempts=attempts,
        )

    async def _post(self, url: str, accept: str, origin: Coord, destination: Coord) -> dict:
        headers = {
            "Authorization": self.config.routing_api_key,
            "Content-Type": "application/json",
            "Accept": accept,
        }
        body = {"coordinates": [origin.to_lon_lat(), destination.to_lon_lat()]}

        if self._client is not None:
            resp = await self._client.post(url, json=body, headers=headers, timeout=self.config.request_timeout_s)
        else:
            async with httpx.AsyncClient() as client:
                resp = await client.post(url, json=body, headers=headers, timeout=self.config.request_timeout_s)

        if resp.status_code >= 400:
            raise RouteFetchError(f"Routing API error {resp.status_code}: {resp.text[:200]}")
        return resp.json()
