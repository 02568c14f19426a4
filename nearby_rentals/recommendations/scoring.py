from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from .config import DEFAULT_ENGINE_CONFIG
from .models import Property, RecommendationQuery

EARTH_RADIUS_KM = 6371.0
PRICE_SCALE = 1000.0


def haversine_km(lat1, lon1, lat2, lon2):
    """Great-circle distance in km. Accepts scalars or numpy arrays."""
    phi1 = np.radians(lat1)
    phi2 = np.radians(lat2)
    d_phi = np.radians(np.subtract(lat2, lat1))
    d_lambda = np.radians(np.subtract(lon2, lon1))
    a = np.sin(d_phi / 2) ** 2 + np.cos(phi1) * np.cos(phi2) * np.sin(d_lambda / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    return EARTH_RADIUS_KM * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def distance(prop: Property, query: RecommendationQuery) -> float:
    return float(
        haversine_km(
            prop.location.latitude, prop.location.longitude, query.latitude, query.longitude
        )
    )


def _weighted(distance_km, price_gap, weight_distance: float, weight_price: float):
    return weight_distance * distance_km + weight_price * price_gap / PRICE_SCALE


def score(
    prop: Property,
    query: RecommendationQuery,
    weight_distance: float = DEFAULT_ENGINE_CONFIG.weight_distance,
    weight_price: float = DEFAULT_ENGINE_CONFIG.weight_price,
) -> float:
    """Weighted distance/price score. Lower is a better match."""
    return float(
        _weighted(distance(prop, query), abs(prop.price - query.price), weight_distance, weight_price)
    )


def _frame(properties: Sequence[Property], query: RecommendationQuery) -> pd.DataFrame:
    df = pd.DataFrame(
        {
            "latitude": [p.location.latitude for p in properties],
            "longitude": [p.location.longitude for p in properties],
            "price": [p.price for p in properties],
        },
        dtype="float64",
    )
    df["_distance"] = haversine_km(
        df["latitude"].to_numpy(), df["longitude"].to_numpy(), query.latitude, query.longitude
    )
    return df


def rank_by_score(
    properties: Sequence[Property],
    query: RecommendationQuery,
    weight_distance: float = DEFAULT_ENGINE_CONFIG.weight_distance,
    weight_price: float = DEFAULT_ENGINE_CONFIG.weight_price,
) -> list[Property]:
    """Order properties by ascending score; ties keep their input order."""
    if not properties:
        return []
    df = _frame(properties, query)
    df["_score"] = _weighted(
        df["_distance"], (df["price"] - query.price).abs(), weight_distance, weight_price
    )
    order = df.sort_values("_score", kind="stable", na_position="last").index
    return [properties[i] for i in order]


def rank_by_distance(properties: Sequence[Property], query: RecommendationQuery) -> list[Property]:
    """Order properties by ascending distance; ties keep their input order."""
    if not properties:
        return []
    df = _frame(properties, query)
    order = df.sort_values("_distance", kind="stable", na_position="last").index
    return [properties[i] for i in order]
