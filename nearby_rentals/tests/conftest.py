from __future__ import annotations

import pytest

from nearby_rentals.analytics.store import clear_events
from nearby_rentals.recommendations.models import Location, Property

# Naga City, where most listings sit
BASE_LAT = 13.6218
BASE_LON = 123.1948


def build_property(
    pid: str,
    lat: float = BASE_LAT,
    lon: float = BASE_LON,
    price: float = 3000.0,
    images: list[str] | None = None,
) -> Property:
    return Property(
        id=pid,
        name=f"Listing {pid}",
        price=price,
        property_type="Apartment",
        location=Location(latitude=lat, longitude=lon, address="Naga City"),
        images=[f"https://img.example.com/{pid}.jpg"] if images is None else images,
    )


class FakeRemote:
    """Remote recommender double that counts calls."""

    def __init__(self, items=None):
        self.items = list(items or [])
        self.calls = 0
        self.queries = []

    def fetch(self, query):
        self.calls += 1
        self.queries.append(query)
        return list(self.items)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def make_property():
    return build_property


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_events():
    clear_events()
    yield
    clear_events()
