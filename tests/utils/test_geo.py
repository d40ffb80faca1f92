import pytest

from test_data import NEARBY_POINT, ORIGIN
from utils.geo import format_distance, haversine_km, offset_coordinate


def test_haversine_identity_is_zero():
    assert haversine_km(*ORIGIN, *ORIGIN) == 0.0


def test_haversine_is_symmetric():
    a = haversine_km(*ORIGIN, *NEARBY_POINT)
    b = haversine_km(*NEARBY_POINT, *ORIGIN)
    assert a == pytest.approx(b)


def test_haversine_nearby_point_within_five_km():
    # 0.002 degrees in each axis at this latitude is a few hundred metres
    distance = haversine_km(*ORIGIN, *NEARBY_POINT)
    assert 0.25 < distance < 0.35
    assert distance <= 5.0


def test_haversine_known_city_distance():
    sydney = (-33.8688, 151.2093)
    melbourne = (-37.8136, 144.9631)
    assert haversine_km(*sydney, *melbourne) == pytest.approx(713.4, abs=2.0)


def test_haversine_antipodal_points():
    assert haversine_km(0, 0, 0, 180) == pytest.approx(20015.1, abs=1.0)


@pytest.mark.parametrize("bearing", [0, 45, 165, 285])
def test_offset_coordinate_lands_near_requested_distance(bearing):
    lat, lng = offset_coordinate(*ORIGIN, 2.0, bearing)
    assert haversine_km(*ORIGIN, lat, lng) == pytest.approx(2.0, rel=0.02)


def test_offset_coordinate_wraps_longitude():
    _, lng = offset_coordinate(0.0, 179.99, 5.0, 90)
    assert -180.0 <= lng < -179.9


def test_format_distance():
    assert format_distance(None) == ""
    assert format_distance(0.289) == "289m away"
    assert format_distance(3.14) == "3.1km away"
