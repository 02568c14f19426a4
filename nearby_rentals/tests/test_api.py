from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import BASE_LAT, BASE_LON, FakeRemote, build_property
from nearby_rentals.app import app
from nearby_rentals.catalog.store import PropertyCatalog
from nearby_rentals.recommendations.cache import RecommendationCache
from nearby_rentals.recommendations.engine import RecommendationEngine, get_engine

client = TestClient(app)


@pytest.fixture
def engine():
    catalog = [
        build_property(f"p{i}", lat=BASE_LAT + 0.001 * i, price=3000 + 100 * i)
        for i in range(10)
    ]
    catalog.append(build_property("lost", lat=float("nan")))
    eng = RecommendationEngine(
        catalog=PropertyCatalog.from_records(catalog),
        cache=RecommendationCache(),
        remote=FakeRemote(["p4"]),
    )
    app.dependency_overrides[get_engine] = lambda: eng
    yield eng
    app.dependency_overrides.clear()


def _body(**overrides):
    body = {"latitude": BASE_LAT, "longitude": BASE_LON, "price": 4000, "k": 5}
    body.update(overrides)
    return body


def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_recommendations_returns_k(engine):
    resp = client.post("/recommendations", json=_body())
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["recommendations"]) == 5
    assert body["recommendations"][0]["property"]["id"] == "p4"
    assert body["recommendations"][0]["source"] == "remote"
    assert body["total_candidates"] == 11
    assert body["cache_hit"] is False


def test_recommendations_second_call_hits_cache(engine):
    client.post("/recommendations", json=_body())
    resp = client.post("/recommendations", json=_body())
    assert resp.json()["cache_hit"] is True
    assert engine.remote.calls == 1


def test_recommendations_defaults(engine):
    resp = client.post(
        "/recommendations", json={"latitude": BASE_LAT, "longitude": BASE_LON, "price": None}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["recommendations"]) == 8
    assert body["cache_key"].endswith(":1000.0:8")


def test_recommendations_validation_rejects_missing_coordinates(engine):
    resp = client.post("/recommendations", json={"price": 4000})
    assert resp.status_code == 422


def test_recommendations_validation_rejects_bad_k(engine):
    resp = client.post("/recommendations", json=_body(k=0))
    assert resp.status_code == 422


def test_recommendations_validation_rejects_out_of_range_latitude(engine):
    resp = client.post("/recommendations", json=_body(latitude=123.0))
    assert resp.status_code == 422


def test_property_recommendations_excludes_anchor(engine):
    resp = client.get("/properties/p2/recommendations", params={"k": 4})
    assert resp.status_code == 200
    body = resp.json()
    ids = [item["property"]["id"] for item in body["recommendations"]]
    assert len(ids) == 4
    assert "p2" not in ids
    assert body["cache_key"] == "property:p2"


def test_property_recommendations_unknown_property(engine):
    resp = client.get("/properties/nope/recommendations")
    assert resp.status_code == 404


def test_property_recommendations_unlocatable_anchor(engine):
    resp = client.get("/properties/lost/recommendations")
    assert resp.status_code == 422


def test_cache_stats_and_clear(engine):
    client.post("/recommendations", json=_body())
    client.post("/recommendations", json=_body())
    stats = client.get("/cache/stats").json()
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1

    resp = client.delete("/cache")
    assert resp.json() == {"status": "cleared"}
    assert client.get("/cache/stats").json()["size"] == 0


def test_clear_single_key(engine):
    first = client.post("/recommendations", json=_body()).json()
    client.post("/recommendations", json=_body(k=3))
    client.delete("/cache", params={"key": first["cache_key"]})
    assert client.get("/cache/stats").json()["size"] == 1


def test_catalog_refresh(engine):
    resp = client.post("/catalog/refresh")
    assert resp.status_code == 200
    assert resp.json() == {"count": 11}
