import asyncio
import json
import math

import httpx
import numpy as np
import pytest

from delivery.errors import InvalidCoordinateError
from delivery.tracking.geo_utils import haversine_km, max_lateral_deviation
from delivery.tracking.models import Coord, RouteSource
from delivery.tracking.route_provider import RouteProvider, generate_fallback_path

ORIGIN = Coord(31.5204, 74.3587)
DESTINATION = Coord(31.4834, 74.3265)

GEOJSON_OK = {
    "features": [{
        "geometry": {"coordinates": [[74.3587, 31.5204], [74.3401, 31.5002], [74.3265, 31.4834]]},
        "properties": {"summary": {"distance": 5234.0}},
    }],
}
POLYLINE_OK = {"routes": [{"geometry": "_p~iF~ps|U_ulLnnqC_mqNvxq`@", "summary": {"distance": 12345}}]}


def make_provider(config, handler, sleep, rng=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RouteProvider(config, client=client, sleep=sleep, rng=rng or np.random.default_rng(7))


# ---------------------------------------------------------------------------
# Synthetic path
# ---------------------------------------------------------------------------

def test_fallback_path_keeps_both_ends(rng):
    path = generate_fallback_path(ORIGIN, DESTINATION, n_points=8, rng=rng)
    assert len(path) == 10
    assert path.start == ORIGIN
    assert path.end == DESTINATION


def test_fallback_path_stays_within_max_offset():
    for seed in range(20):
        path = generate_fallback_path(
            ORIGIN, DESTINATION, max_offset_deg=0.0015, rng=np.random.default_rng(seed)
        )
        assert max_lateral_deviation(path.points, ORIGIN, DESTINATION) <= 0.0015 + 1e-12


def test_fallback_path_for_identical_points_does_not_move(rng):
    path = generate_fallback_path(ORIGIN, ORIGIN, rng=rng)
    assert all(p.lat == pytest.approx(ORIGIN.lat) and p.lon == pytest.approx(ORIGIN.lon) for p in path)


def test_fallback_route_inflates_straight_line_distance(config, sleep, rng):
    provider = RouteProvider(config, sleep=sleep, rng=rng)
    result = provider.fallback_route(ORIGIN, DESTINATION)

    expected_km = haversine_km(ORIGIN, DESTINATION) * 1.25
    assert result.source is RouteSource.FALLBACK
    assert result.distance_km == pytest.approx(expected_km)
    assert result.duration_minutes == math.ceil(expected_km / 40 * 60)
    assert result.traffic_factor == 1.0


# ---------------------------------------------------------------------------
# Network paths
# ---------------------------------------------------------------------------

def test_primary_success_uses_geojson_endpoint(config, sleep):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=GEOJSON_OK)

    provider = make_provider(config, handler, sleep)
    result = asyncio.run(provider.fetch_route(ORIGIN, DESTINATION))

    assert result.source is RouteSource.PRIMARY
    assert result.attempts == 1
    assert len(result.path) == 3
    assert result.distance_km == 5.2
    assert 0.9 <= result.traffic_factor <= 1.3
    assert result.duration_minutes == math.ceil(5.2 / 40 * 60 * result.traffic_factor)
    assert sleep.calls == []

    request = requests[0]
    assert request.url.path == "/v2/directions/driving-car/geojson"
    assert request.headers["Authorization"] == "test-key"
    assert json.loads(request.content) == {
        "coordinates": [[ORIGIN.lon, ORIGIN.lat], [DESTINATION.lon, DESTINATION.lat]],
    }


def test_primary_retries_with_backoff_then_alternate(config, sleep):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path.endswith("/geojson"):
            return httpx.Response(500, text="upstream down")
        return httpx.Response(200, json=POLYLINE_OK)

    provider = make_provider(config, handler, sleep)
    result = asyncio.run(provider.fetch_route(ORIGIN, DESTINATION))

    assert calls == ["/v2/directions/driving-car/geojson"] * 3 + ["/v2/directions/driving-car/json"]
    assert sleep.calls == [2.0, 4.0]
    assert result.source is RouteSource.ALTERNATE
    assert result.attempts == 4
    assert result.distance_km == 12.3
    assert 0.9 <= result.traffic_factor <= 1.2


def test_all_failures_produce_exactly_one_fallback(config, sleep, monkeypatch):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(502)

    provider = make_provider(config, handler, sleep)
    fallbacks = []
    original = provider.fallback_route

    def spy(origin, destination, attempts=0):
        fallbacks.append(attempts)
        return original(origin, destination, attempts=attempts)

    monkeypatch.setattr(provider, "fallback_route", spy)
    result = asyncio.run(provider.fetch_route(ORIGIN, DESTINATION))

    assert len(calls) == 4
    assert sleep.calls == [2.0, 4.0]
    assert fallbacks == [4]
    assert result.source is RouteSource.FALLBACK
    assert result.path.start == ORIGIN
    assert result.path.end == DESTINATION


def test_transport_errors_and_bad_payloads_count_as_failures(config, sleep):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/geojson"):
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"routes": []})

    provider = make_provider(config, handler, sleep)
    result = asyncio.run(provider.fetch_route(ORIGIN, DESTINATION))
    assert result.source is RouteSource.FALLBACK


def test_invalid_coordinate_fails_before_any_request(config, sleep):
    def handler(request: httpx.Request) -> httpx.Response:
        pytest.fail("no request expected for an invalid coordinate")

    provider = make_provider(config, handler, sleep)
    with pytest.raises(InvalidCoordinateError):
        asyncio.run(provider.fetch_route(Coord(float("nan"), 74.0), DESTINATION))
    assert sleep.calls == []


@pytest.mark.parametrize("payload", [
    {"features": {"a": 1}, "routes": {"a": 1}},
    {
        "features": [{"geometry": {"coordinates": [[74.3587, 31.5204], [74.3265, 31.4834]]}, "properties": [1]}],
        "routes": [["not", "a", "route"]],
    },
])
def test_malformed_success_bodies_fall_back(config, sleep, payload):
    provider = make_provider(config, lambda request: httpx.Response(200, json=payload), sleep)
    result = asyncio.run(provider.fetch_route(ORIGIN, DESTINATION))
    assert result.source is RouteSource.FALLBACK
    assert result.attempts == 4


def test_route_with_out_of_range_point_is_not_accepted(config, sleep):
    bad = {
        "features": [{
            "geometry": {"coordinates": [[74.3, 31.5], [500.0, 95.0], [74.3265, 31.4834]]},
            "properties": {"summary": {"distance": 5000}},
        }],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/geojson"):
            return httpx.Response(200, json=bad)
        return httpx.Response(200, json=POLYLINE_OK)

    provider = make_provider(config, handler, sleep)
    result = asyncio.run(provider.fetch_route(ORIGIN, DESTINATION))
    assert result.source is RouteSource.ALTERNATE
    assert all(abs(p.lat) <= 90 and abs(p.lon) <= 180 for p in result.path)
