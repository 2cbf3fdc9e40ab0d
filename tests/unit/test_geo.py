"""Tests for distance and coordinate helpers."""
import math

import pytest

from geostake.core.geo import (
    CLAIM_DISTANCE_METERS,
    EARTH_RADIUS_METERS,
    Position,
    distance_meters,
    format_coordinate,
    from_contract_coordinate,
    to_contract_coordinate,
)
from tests.conftest import north_of


@pytest.mark.parametrize("lat,lon", [(0, 0), (40.7128, -74.006), (-33.8688, 151.2093), (90, 0)])
def test_distance_to_self_is_zero(lat, lon):
    assert distance_meters(lat, lon, lat, lon) == 0


def test_distance_is_symmetric():
    london = (51.5074, -0.1278)
    paris = (48.8566, 2.3522)
    assert distance_meters(*london, *paris) == pytest.approx(distance_meters(*paris, *london))


def test_distance_london_paris():
    d = distance_meters(51.5074, -0.1278, 48.8566, 2.3522)
    assert d == pytest.approx(343_500, rel=0.01)


def test_small_offsets_match_meters_per_degree():
    assert distance_meters(0, 0, 0.001, 0) == pytest.approx(111.19, abs=0.01)
    lat = north_of(40.7128, 50)
    assert distance_meters(40.7128, -74.006, lat, -74.006) == pytest.approx(50, abs=1e-6)


def test_antipodal_points_do_not_fail():
    assert distance_meters(0, 0, 0, 180) == pytest.approx(math.pi * EARTH_RADIUS_METERS)


def test_position_distance_and_str():
    a = Position(40.7128, -74.006)
    b = Position(north_of(40.7128, 150), -74.006)
    assert a.distance_to(b) == pytest.approx(150, abs=1e-6)
    assert a.distance_to(b) > CLAIM_DISTANCE_METERS
    assert str(a) == "40.712800, -74.006000"


def test_contract_coordinates():
    assert to_contract_coordinate(40.712776) == 40712776
    assert to_contract_coordinate(-74.005974) == -74005974
    assert from_contract_coordinate(40712776) == pytest.approx(40.712776)
    assert format_coordinate(-74005974) == "-74.005974"
