import math

import pytest

from delivery.errors import InvalidCoordinateError
from delivery.tracking.geo_utils import (
    calculate_bearing,
    haversine_km,
    interpolate,
    is_valid_coord,
    map_region,
    max_lateral_deviation,
    path_length_km,
    validate_coord,
)
from delivery.tracking.models import Coord

LAHORE = Coord(31.5204, 74.3587)
KARACHI = Coord(24.8607, 67.0011)


def test_identical_points_are_zero_apart():
    assert haversine_km(LAHORE, LAHORE) == 0.0


def test_distance_is_symmetric():
    assert haversine_km(LAHORE, KARACHI) == pytest.approx(haversine_km(KARACHI, LAHORE))


def test_known_city_distance():
    # Lahore -> Karachi is roughly 1,030 km great-circle
    assert haversine_km(LAHORE, KARACHI) == pytest.approx(1030, abs=15)


def test_antipodal_points_are_half_the_circumference():
    d = haversine_km(Coord(0.0, 0.0), Coord(0.0, 180.0))
    assert d == pytest.approx(math.pi * 6371.0, rel=1e-9)
    assert d == pytest.approx(20015, abs=1)


def test_path_length_sums_segments():
    mid = Coord(28.0, 71.0)
    assert path_length_km([LAHORE, mid, KARACHI]) == pytest.approx(
        haversine_km(LAHORE, mid) + haversine_km(mid, KARACHI)
    )
    assert path_length_km([LAHORE]) == 0.0


@pytest.mark.parametrize("coord", [
    None,
    Coord(float("nan"), 74.0),
    Coord(31.0, float("nan")),
    Coord(91.0, 74.0),
    Coord(31.0, -180.5),
])
def test_invalid_coordinates_are_rejected(coord):
    assert not is_valid_coord(coord)
    with pytest.raises(InvalidCoordinateError):
        validate_coord(coord, "provider")


def test_invalid_coordinate_error_is_a_value_error():
    with pytest.raises(ValueError):
        validate_coord(Coord(100.0, 0.0))


def test_boundary_coordinates_are_valid():
    assert validate_coord(Coord(-90.0, 180.0)) == Coord(-90.0, 180.0)


def test_interpolate_endpoints_and_midpoint():
    a, b = Coord(0.0, 0.0), Coord(2.0, 4.0)
    assert interpolate(a, b, 0.0) == a
    assert interpolate(a, b, 1.0) == b
    assert interpolate(a, b, 0.5) == Coord(1.0, 2.0)


def test_bearing_cardinal_directions():
    origin = Coord(0.0, 0.0)
    assert calculate_bearing(origin, Coord(1.0, 0.0)) == pytest.approx(0.0)
    assert calculate_bearing(origin, Coord(0.0, 1.0)) == pytest.approx(90.0)
    assert calculate_bearing(origin, Coord(-1.0, 0.0)) == pytest.approx(180.0)
    assert calculate_bearing(origin, Coord(0.0, -1.0)) == pytest.approx(270.0)


def test_map_region_is_centred_and_padded():
    region = map_region(Coord(31.0, 74.0), Coord(31.1, 74.2))
    assert region.center.lat == pytest.approx(31.05)
    assert region.center.lon == pytest.approx(74.1)
    assert region.lat_delta == pytest.approx(0.25)
    assert region.lon_delta == pytest.approx(0.5)


def test_map_region_has_a_minimum_zoom():
    region = map_region(LAHORE, LAHORE)
    assert region.lat_delta == 0.02
    assert region.lon_delta == 0.02


def test_lateral_deviation_of_points_on_the_line_is_zero():
    start, end = Coord(0.0, 0.0), Coord(1.0, 1.0)
    assert max_lateral_deviation([start, Coord(0.5, 0.5), end], start, end) == pytest.approx(0.0)


def test_lateral_deviation_measures_the_furthest_point():
    start, end = Coord(0.0, 0.0), Coord(0.0, 1.0)
    points = [start, Coord(0.001, 0.3), Coord(-0.002, 0.6), end]
    assert max_lateral_deviation(points, start, end) == pytest.approx(0.002)
