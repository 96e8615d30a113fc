from __future__ import annotations

import math

import pytest

from src.smart_attendance.smart_attendance.core.exceptions import InvalidCoordinate
from src.smart_attendance.smart_attendance.geo.geometry import (
    Coordinate,
    bearing_degrees,
    distance_meters,
    is_inside,
    validate_coordinate,
)

OFFICE = Coordinate(22.4994, 91.7773)


@pytest.mark.parametrize(
    "a,b",
    [
        (Coordinate(22.4994, 91.7773), Coordinate(22.5010, 91.7773)),
        (Coordinate(-33.8688, 151.2093), Coordinate(51.5074, -0.1278)),
        (Coordinate(0.0, 179.9), Coordinate(0.0, -179.9)),
    ],
)
def test_distance_is_symmetric(a, b):
    assert math.isclose(distance_meters(a, b), distance_meters(b, a), rel_tol=1e-6)


def test_distance_to_self_is_zero():
    assert distance_meters(OFFICE, OFFICE) == 0


def test_sample_67m_east_is_inside_100m_fence():
    point = Coordinate(22.4994, 91.7779)
    assert 55 < distance_meters(OFFICE, point) < 70
    assert is_inside(point, OFFICE, 100)


def test_sample_178m_north_is_outside_100m_fence():
    point = Coordinate(22.5010, 91.7773)
    assert 170 < distance_meters(OFFICE, point) < 185
    assert not is_inside(point, OFFICE, 100)


def test_membership_boundary_is_inclusive():
    point = Coordinate(22.4994, 91.7779)
    radius = distance_meters(OFFICE, point)

    assert is_inside(point, OFFICE, radius)
    assert not is_inside(point, OFFICE, radius - 1e-6)


def test_bearing_range():
    north = bearing_degrees(OFFICE, Coordinate(22.5010, 91.7773))
    west = bearing_degrees(OFFICE, Coordinate(22.4994, 91.7700))

    assert north == pytest.approx(0.0, abs=1e-6)
    assert west == pytest.approx(270.0, abs=0.1)
    assert 0 <= west < 360


@pytest.mark.parametrize("lat,lng", [(91, 0), (-90.5, 10), (10, 181), (float("nan"), 0)])
def test_validate_rejects_out_of_range(lat, lng):
    with pytest.raises(InvalidCoordinate):
        validate_coordinate(Coordinate(lat, lng))


def test_from_mapping_accepts_native_and_long_keys():
    assert Coordinate.from_mapping({"lat": 1.5, "lng": 2.5}) == Coordinate(1.5, 2.5)
    assert Coordinate.from_mapping({"latitude": "1.5", "longitude": "2.5"}) == Coordinate(1.5, 2.5)

    with pytest.raises(InvalidCoordinate):
        Coordinate.from_mapping({"lat": 1.5})
