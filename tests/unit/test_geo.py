"""Unit tests for distance and latitude band helpers"""

import random
from credit_settlement.utils.geo import bounding_box, haversine_km, latitude_bands


def test_haversine_known_distance():
    """Test Bengaluru to Mysuru is roughly 128km"""
    distance = haversine_km(12.9716, 77.5946, 12.2958, 76.6394)
    assert 125 < distance < 131


def test_haversine_zero():
    assert haversine_km(10.0, 20.0, 10.0, 20.0) == 0.0


def test_bounding_box_contains_disc_edge():
    min_lat, max_lat, min_lon, max_lon = bounding_box(12.97, 77.59, 20.0)

    assert min_lat < 12.97 < max_lat
    assert min_lon < 77.59 < max_lon
    assert haversine_km(12.97, 77.59, max_lat, 77.59) <= 20.0 + 1e-6


def test_bounding_box_near_pole_spans_all_longitudes():
    _, _, min_lon, max_lon = bounding_box(89.95, 10.0, 20.0)
    assert (min_lon, max_lon) == (-180.0, 180.0)


def test_nearby_points_share_a_band():
    """Test any two points closer than the radius lock a common band"""
    rng = random.Random(42)
    for _ in range(500):
        lat = rng.uniform(-80, 80)
        lon = rng.uniform(-170, 170)
        other_lat = lat + rng.uniform(-0.17, 0.17)
        other_lon = lon + rng.uniform(-0.17, 0.17)
        if haversine_km(lat, lon, other_lat, other_lon) > 20.0:
            continue
        assert set(latitude_bands(lat, 20.0)) & set(latitude_bands(other_lat, 20.0))
