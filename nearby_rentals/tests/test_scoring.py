import math

import numpy as np
import pytest

from nearby_rentals.recommendations.models import RecommendationQuery
from nearby_rentals.recommendations.scoring import (
    distance,
    haversine_km,
    rank_by_distance,
    rank_by_score,
    score,
)

QUERY = RecommendationQuery(latitude=13.6218, longitude=123.1948, price=4000, k=5)


def test_haversine_one_degree_on_equator():
    assert haversine_km(0.0, 0.0, 0.0, 1.0) == pytest.approx(6371 * math.pi / 180)


def test_haversine_same_point_is_zero():
    assert haversine_km(13.6218, 123.1948, 13.6218, 123.1948) == 0.0


def test_haversine_is_symmetric():
    a = haversine_km(13.6218, 123.1948, 14.5995, 120.9842)
    b = haversine_km(14.5995, 120.9842, 13.6218, 123.1948)
    assert a == pytest.approx(b)
    # Naga City to Manila is roughly 260 km as the crow flies
    assert 240 < a < 280


def test_haversine_vectorised_matches_scalar():
    lats = np.array([13.62, 13.70, 14.0])
    lons = np.array([123.19, 123.25, 123.0])
    vector = haversine_km(lats, lons, 13.6218, 123.1948)
    for i in range(3):
        assert vector[i] == pytest.approx(haversine_km(lats[i], lons[i], 13.6218, 123.1948))


def test_distance_uses_property_location(make_property):
    prop = make_property("p1", lat=13.6318, lon=123.1948)
    assert distance(prop, QUERY) == pytest.approx(1.112, abs=0.01)


def test_score_weights_distance_and_price(make_property):
    prop = make_property("p1", lat=13.6318, lon=123.1948, price=3000)
    expected = 0.75 * distance(prop, QUERY) + 0.25 * 1000 / 1000
    assert score(prop, QUERY) == pytest.approx(expected)


def test_score_custom_weights(make_property):
    prop = make_property("p1", price=6000)
    assert score(prop, QUERY, weight_distance=0.0, weight_price=1.0) == pytest.approx(2.0)


def test_rank_by_score_orders_ascending(make_property):
    far = make_property("far", lat=13.70)
    near_expensive = make_property("near_expensive", price=9000)
    near_cheap = make_property("near_cheap", price=4000)
    ranked = rank_by_score([far, near_expensive, near_cheap], QUERY)
    assert [p.id for p in ranked] == ["near_cheap", "near_expensive", "far"]


def test_rank_by_score_ties_keep_catalog_order(make_property):
    props = [make_property(f"p{i}") for i in range(5)]
    assert [p.id for p in rank_by_score(props, QUERY)] == ["p0", "p1", "p2", "p3", "p4"]


def test_rank_by_distance_ignores_price(make_property):
    near_expensive = make_property("near", lat=13.6219, price=50000)
    far_cheap = make_property("far", lat=13.65, price=4000)
    ranked = rank_by_distance([far_cheap, near_expensive], QUERY)
    assert [p.id for p in ranked] == ["near", "far"]


def test_rank_puts_unlocatable_last(make_property):
    lost = make_property("lost", lat=float("nan"))
    found = make_property("found", lat=13.7)
    assert [p.id for p in rank_by_distance([lost, found], QUERY)] == ["found", "lost"]


def test_rank_empty():
    assert rank_by_score([], QUERY) == []
    assert rank_by_distance([], QUERY) == []
