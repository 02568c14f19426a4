from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")


@dataclass(frozen=True)
class RecommenderConfig:
    base_url: str = os.getenv("RECOMMENDER_API_URL", "http://localhost:8001")
    # Seconds. Bounds each httpx phase, and the body download as a whole
    timeout: float = 10.0
    mode: str = "knn"
    enabled: bool = os.getenv("RECOMMENDER_ENABLED", "true").lower() != "false"


@dataclass(frozen=True)
class EngineConfig:
    default_k: int = 8
    default_price: float = 1000.0
    location_ttl_minutes: float = 10.0
    anchor_ttl_minutes: float = 5.0
    weight_distance: float = 0.75
    weight_price: float = 0.25
    fallback_ratio: float = 0.6
    plausible_radius_km: float = 5.0
    implausible_avg_km: float = 20.0
    coordinate_precision: int = 3


@dataclass(frozen=True)
class CacheConfig:
    backend: str = os.getenv("RECOMMENDATION_CACHE", "memory")
    sqlite_path: Path = Path(
        os.getenv(
            "RECOMMENDATION_CACHE_PATH",
            str(Path(__file__).resolve().parent.parent / "data" / "recommendations.sqlite3"),
        )
    )


DEFAULT_RECOMMENDER_CONFIG = RecommenderConfig()
DEFAULT_ENGINE_CONFIG = EngineConfig()
DEFAULT_CACHE_CONFIG = CacheConfig()
