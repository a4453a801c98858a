import math

import pytest

from src.geo.domain.value_objects import Coordinate, bounding_box, distance_km
from src.shared.exceptions import InvalidCoordinate


def test_one_degree_of_latitude_at_equator():
    assert distance_km(Coordinate(0, 0), Coordinate(1, 0)) == pytest.approx(111.19, abs=0.01)


def test_distance_is_symmetric_and_zero_on_itself():
    a, b = Coordinate(12.97, 77.59), Coordinate(13.08, 80.27)
    assert distance_km(a, b) == pytest.approx(distance_km(b, a))
    assert distance_km(a, a) == 0


@pytest.mark.parametrize(
    "lat,lng",
    [(91, 0), (-90.5, 0), (0, 180.1), (0, -181), (math.nan, 0), (0, math.inf), ("north", 0)],
)
def test_invalid_coordinates_rejected(lat, lng):
    with pytest.raises(InvalidCoordinate):
        Coordinate(lat, lng)


def test_boundary_coordinates_are_valid():
    Coordinate(90, 180)
    Coordinate(-90, -180)


def test_maybe_returns_none_for_partial_location():
    assert Coordinate.maybe(None, 77.5) is None
    assert Coordinate.maybe(12.9, None) is None
    assert Coordinate.maybe(12.9, 77.5) == Coordinate(12.9, 77.5)


def test_bounding_box_contains_circle_edge():
    center = Coordinate(12.9716, 77.5946)
    min_lat, max_lat, min_lng, max_lng = bounding_box(center, 10)
    assert min_lat < center.lat < max_lat
    assert min_lng < center.lng < max_lng
    # a point 9.9 km due north/east is inside the box
    north = Coordinate(center.lat + 9.9 / 111.19, center.lng)
    assert min_lat <= north.lat <= max_lat
    east_dlng = 9.9 / (111.19 * math.cos(math.radians(center.lat)))
    assert min_lng <= center.lng + east_dlng <= max_lng


def test_bounding_box_near_pole_drops_longitude_bounds():
    min_lat, max_lat, min_lng, max_lng = bounding_box(Coordinate(89.9, 10), 50)
    assert max_lat == 90.0
    assert min_lng is None and max_lng is None


def test_bounding_box_across_antimeridian_drops_longitude_bounds():
    *_, min_lng, max_lng = bounding_box(Coordinate(0, 179.95), 20)
    assert min_lng is None and max_lng is None
